"""
Named configuration for the tournament engine.

All the constants the phase engine, bracket generator and point normalizers
depend on live in one frozen dataclass so a tournament can run with different
rules without touching the algorithms.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Tuple

from smkc.tournament_core.courses import COURSES


@dataclass(frozen=True)
class EngineConfig:
    """Rules for a single tournament run."""

    # Life-based finals (phase3)
    initial_lives: int = 3
    life_reset_thresholds: FrozenSet[int] = frozenset({8, 4, 2})

    # Head-to-head brackets: first to 5 wins (best of 9)
    bracket_target_wins: int = 5

    # Point ceilings per mode
    qualification_point_ceiling: int = 1000
    finals_point_ceiling: int = 2000
    course_point_ceiling: int = 50

    # Optimistic concurrency
    max_retry_attempts: int = 3
    retry_base_delay: float = 0.1  # seconds
    retry_max_delay: float = 1.0

    # Time recorded for a player who did not finish a phase round (9:59.990)
    retry_penalty_ms: int = 599990

    courses: Tuple[str, ...] = field(default=COURSES)

    def __post_init__(self):
        # Settings may provide lists; keep the dataclass hashable
        object.__setattr__(
            self, "life_reset_thresholds", frozenset(self.life_reset_thresholds)
        )
        object.__setattr__(self, "courses", tuple(self.courses))


DEFAULT_CONFIG = EngineConfig()


def engine_config_from_settings() -> EngineConfig:
    """Build an EngineConfig from the SMKC_ENGINE Django setting."""
    from django.conf import settings

    overrides = getattr(settings, "SMKC_ENGINE", None) or {}
    return EngineConfig(**overrides)
