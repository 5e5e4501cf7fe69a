"""
Overall tournament ranking.

Each mode contributes a qualification category (0-1000) and a finals category
(0-2000) per player. The overall ranking sums all eight categories and ranks
players with standard competition ranking ("1224"): equal totals share a rank
and the next distinct total takes its 1-based position in the sorted list.
"""

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from smkc.tournament_core.config import DEFAULT_CONFIG, EngineConfig
from smkc.tournament_core.exceptions import ValidationError
from smkc.tournament_core.structure import (
    Mode,
    PhaseRound,
    PlayerTournamentScore,
    Stage,
    StageEntry,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TA_FINALS_POINTS = (
    2000, 1600, 1300, 1000, 800, 700, 600, 500,
    420, 400, 380, 360, 340, 320, 300, 280,
    160, 150, 140, 130, 120, 110, 100, 90,
)

# Tied placements share points: 5th-6th are the losers semifinal losers,
# 7th-8th the round before, and so on down the bracket.
BM_MR_GP_FINALS_POINTS = (
    2000, 1600, 1300, 1000, 750, 750, 550, 550,
    400, 400, 400, 400, 300, 300, 300, 300,
    150, 150, 150, 150, 100, 100, 100, 100,
)

FINALS_POINTS_TABLES = {
    Mode.TA: TA_FINALS_POINTS,
    Mode.BM: BM_MR_GP_FINALS_POINTS,
    Mode.MR: BM_MR_GP_FINALS_POINTS,
    Mode.GP: BM_MR_GP_FINALS_POINTS,
}

_QUALIFICATION_FIELDS = {
    Mode.TA: "ta_qualification_points",
    Mode.BM: "bm_qualification_points",
    Mode.MR: "mr_qualification_points",
    Mode.GP: "gp_qualification_points",
}

_FINALS_FIELDS = {
    Mode.TA: "ta_finals_points",
    Mode.BM: "bm_finals_points",
    Mode.MR: "mr_finals_points",
    Mode.GP: "gp_finals_points",
}


def assign_competition_ranks(items: Sequence[T], key: Callable[[T], object]) -> List[int]:
    """Standard competition ranks for items already sorted best first.

    Items with equal keys share a rank; ranks skip after a tie block and
    never compress.
    """
    ranks = []
    current_rank = 0
    previous = None
    for position, item in enumerate(items, start=1):
        value = key(item)
        if position == 1 or value != previous:
            current_rank = position
        ranks.append(current_rank)
        previous = value
    return ranks


def get_finals_points(mode: Mode, position: int, config: EngineConfig = DEFAULT_CONFIG) -> int:
    """Points for a finals placement, capped at the finals ceiling.

    Positions outside the table score 0.
    """
    table = FINALS_POINTS_TABLES[Mode(mode)]
    index = position - 1
    if index < 0 or index >= len(table):
        return 0
    return min(table[index], config.finals_point_ceiling)


def finals_points_from_positions(
    mode: Mode, positions: Mapping[str, int], config: EngineConfig = DEFAULT_CONFIG
) -> Dict[str, int]:
    """Convert a player -> finals position map to a player -> points map."""
    return {
        player_id: get_finals_points(mode, position, config)
        for player_id, position in positions.items()
    }


def _knockout_rounds(rounds: Iterable[PhaseRound]) -> Dict[Tuple[Stage, str], int]:
    """(phase, player id) -> round in which the player was eliminated."""
    knocked_out = {}
    for phase_round in sorted(rounds, key=lambda r: (r.phase.value, r.round_number)):
        for player_id in phase_round.eliminated:
            knocked_out[(phase_round.phase, player_id)] = phase_round.round_number
    return knocked_out


def _finals_sort_key(entry: StageEntry, knocked_out: Mapping[Tuple[Stage, str], int]):
    total_time = entry.total_time if entry.total_time is not None else float("inf")
    if not entry.eliminated:
        return (0, -entry.lives, 0, total_time, entry.player_id)
    # Later knockouts place higher; players removed outside a round go last
    knockout_round = knocked_out.get((entry.stage, entry.player_id), 0)
    return (1, 0, -knockout_round, total_time, entry.player_id)


def ta_finals_positions(
    entries: Iterable[StageEntry], rounds: Iterable[PhaseRound] = ()
) -> Dict[str, int]:
    """Finals positions for Time-Attack from the phase1-3 stage entries.

    phase3 entries take positions from 1: players still standing by remaining
    lives and total time, then eliminated players with the latest knockout
    first. Players knocked out in phase2 follow, then those knocked out in
    phase1. A player appears once, at the furthest phase reached.

    Args:
        rounds: the closed PhaseRounds of the finals; without them eliminated
            players of a phase are ordered by total time only
    """
    knocked_out = _knockout_rounds(rounds)
    by_stage: Dict[Stage, List[StageEntry]] = {
        Stage.PHASE3: [],
        Stage.PHASE2: [],
        Stage.PHASE1: [],
    }
    for entry in entries:
        if entry.stage in by_stage:
            by_stage[entry.stage].append(entry)

    positions: Dict[str, int] = {}
    for stage in (Stage.PHASE3, Stage.PHASE2, Stage.PHASE1):
        candidates = by_stage[stage]
        if stage != Stage.PHASE3:
            # Survivors of earlier phases are placed by the later phase
            candidates = [e for e in candidates if e.eliminated]
        for entry in sorted(candidates, key=lambda e: _finals_sort_key(e, knocked_out)):
            if entry.player_id not in positions:
                positions[entry.player_id] = len(positions) + 1
    return positions


def _category_points(
    points: Mapping[Mode, Mapping[str, int]], mode: Mode, player_id: str, ceiling: int
) -> int:
    value = points.get(mode, {}).get(player_id, 0)
    if value < 0 or value > ceiling:
        raise ValidationError(
            f"{mode.value} points for {player_id} must be between 0 and {ceiling}, got {value}"
        )
    return value


def calculate_overall_rankings(
    qualification_points: Mapping[Mode, Mapping[str, int]],
    finals_points: Optional[Mapping[Mode, Mapping[str, int]]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[PlayerTournamentScore]:
    """Aggregate every mode's categories into a ranked list of scores.

    Args:
        qualification_points: mode -> (player id -> qualification points)
        finals_points: mode -> (player id -> finals points)
        config: supplies the per-category point ceilings

    Returns:
        Scores sorted by total points (desc) then player id, with overall_rank
        assigned. Only players with qualification data in at least one mode
        appear.

    Raises:
        ValidationError: If a category holds points outside 0..ceiling
    """
    finals_points = finals_points or {}

    player_ids = set()
    for points in qualification_points.values():
        player_ids.update(points.keys())

    scores = []
    for player_id in player_ids:
        score = PlayerTournamentScore(player_id=player_id)
        for mode, field_name in _QUALIFICATION_FIELDS.items():
            value = _category_points(
                qualification_points, mode, player_id, config.qualification_point_ceiling
            )
            setattr(score, field_name, value)
        for mode, field_name in _FINALS_FIELDS.items():
            value = _category_points(
                finals_points, mode, player_id, config.finals_point_ceiling
            )
            setattr(score, field_name, value)
        score.total_points = sum(
            getattr(score, name)
            for name in list(_QUALIFICATION_FIELDS.values()) + list(_FINALS_FIELDS.values())
        )
        scores.append(score)

    scores.sort(key=lambda s: (-s.total_points, s.player_id))
    for score, rank in zip(scores, assign_competition_ranks(scores, lambda s: s.total_points)):
        score.overall_rank = rank

    logger.info("Calculated overall rankings for %d players", len(scores))
    return scores
