"""
Exceptions raised by the tournament progression engine.

Everything the engine raises derives from TournamentEngineError so callers can
separate engine conditions from storage failures, which propagate unmodified.
"""

from typing import Optional


class TournamentEngineError(Exception):
    pass


class ConfigurationError(TournamentEngineError):
    pass


class ValidationError(TournamentEngineError):
    """Input was rejected before any state was written."""


class InvalidTimeError(ValidationError):
    def __init__(self, value: str):
        super().__init__(
            f"Invalid time format {value!r}. Expected M:SS.mmm or MM:SS.mmm"
        )
        self.value = value


class UnknownCourseError(ValidationError):
    def __init__(self, course: str):
        super().__init__(f"Unknown course code {course!r}")
        self.course = course


class InsufficientPlayersError(TournamentEngineError):
    pass


class StageFrozenError(TournamentEngineError):
    def __init__(self, stage: str):
        super().__init__(f"This stage ({stage}) is frozen. Time edits are not allowed.")
        self.stage = stage


class DuplicateEntryError(TournamentEngineError):
    """A (tournament, player, stage) entry already exists."""


class StaleEntryError(TournamentEngineError):
    """A conditional write found the stored version changed underneath it."""

    def __init__(self, message: str, current_version: Optional[int] = None):
        super().__init__(message)
        self.current_version = current_version


class ConflictError(TournamentEngineError):
    """Concurrent modification persisted through every retry attempt."""

    def __init__(self, attempts: int):
        super().__init__(
            f"Concurrent modification detected after {attempts} attempts, try again"
        )
        self.attempts = attempts
