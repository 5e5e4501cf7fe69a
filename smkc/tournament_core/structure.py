"""
Plain data structures shared by the tournament engine.

These carry no persistence behaviour. Stores convert between them and their
own representation (see smkc.tournament.db_to_structure for the Django one).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class Stage(str, Enum):
    """A named phase of the Time-Attack competition a player entry belongs to."""

    QUALIFICATION = "qualification"
    REVIVAL_1 = "revival_1"
    REVIVAL_2 = "revival_2"
    PHASE1 = "phase1"
    PHASE2 = "phase2"
    PHASE3 = "phase3"

    @property
    def is_revival(self) -> bool:
        return self in (Stage.REVIVAL_1, Stage.REVIVAL_2)

    @property
    def is_finals_phase(self) -> bool:
        return self in (Stage.PHASE1, Stage.PHASE2, Stage.PHASE3)


class Mode(str, Enum):
    """The four competition modes."""

    TA = "TA"  # Time-Attack
    BM = "BM"  # Battle Mode
    MR = "MR"  # Match Race
    GP = "GP"  # Grand Prix


@dataclass
class StageEntry:
    """A player's participation in one stage of a tournament."""

    tournament_id: str
    player_id: str
    stage: Stage
    player_name: str = ""
    lives: int = 0
    eliminated: bool = False
    times: Dict[str, str] = field(default_factory=dict)
    total_time: Optional[int] = None
    rank: Optional[int] = None
    qualification_points: int = 0
    version: int = 0

    def __post_init__(self):
        self.stage = Stage(self.stage)

    @property
    def key(self):
        return (self.tournament_id, self.player_id, self.stage)

    @property
    def is_active(self) -> bool:
        return not self.eliminated


@dataclass(frozen=True)
class CourseResult:
    """One player's time on the course played in a phase round.

    A time of None means the player did not finish and is charged the
    configured retry penalty.
    """

    player_id: str
    time_ms: Optional[int]


@dataclass
class PhaseRound:
    """A single course played in a finals phase."""

    tournament_id: str
    phase: Stage
    round_number: int
    course: str
    results: Optional[List[CourseResult]] = None
    eliminated: List[str] = field(default_factory=list)
    lives_reset: bool = False

    def __post_init__(self):
        self.phase = Stage(self.phase)

    @property
    def is_open(self) -> bool:
        return self.results is None


@dataclass(frozen=True)
class StageFilter:
    """Typed filter for stage entry queries.

    Every field other than tournament_id and stage is optional; None means
    "do not filter on this".
    """

    tournament_id: str
    stage: Stage
    eliminated: Optional[bool] = None
    rank_min: Optional[int] = None
    rank_max: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "stage", Stage(self.stage))

    def matches(self, entry: StageEntry) -> bool:
        if entry.tournament_id != self.tournament_id or entry.stage != self.stage:
            return False
        if self.eliminated is not None and entry.eliminated != self.eliminated:
            return False
        if self.rank_min is not None or self.rank_max is not None:
            if entry.rank is None:
                return False
            if self.rank_min is not None and entry.rank < self.rank_min:
                return False
            if self.rank_max is not None and entry.rank > self.rank_max:
                return False
        return True


@dataclass
class PromotionResult:
    """Outcome of moving players into a stage."""

    entries: List[StageEntry] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # display names
    message: str = ""


@dataclass
class RoundOutcome:
    """Outcome of processing one phase round."""

    round: Optional[PhaseRound]
    eliminated: List[str] = field(default_factory=list)
    lives_reset: bool = False
    active_remaining: int = 0


@dataclass(frozen=True)
class PhaseSummary:
    total: int
    active: int
    eliminated: int
    winner: Optional[str] = None


@dataclass
class PhaseStatus:
    phases: Dict[Stage, PhaseSummary] = field(default_factory=dict)
    current_phase: Stage = Stage.QUALIFICATION


@dataclass
class PlayerTournamentScore:
    """A player's points across every mode and the resulting overall rank."""

    player_id: str
    ta_qualification_points: int = 0
    bm_qualification_points: int = 0
    mr_qualification_points: int = 0
    gp_qualification_points: int = 0
    ta_finals_points: int = 0
    bm_finals_points: int = 0
    mr_finals_points: int = 0
    gp_finals_points: int = 0
    total_points: int = 0
    overall_rank: Optional[int] = None
