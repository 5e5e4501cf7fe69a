"""
Time-Attack finals progression.

Players move forward through stages by explicit promotion calls:

- Life-based finals: qualification -> phase1 -> phase2 -> phase3
- Revival rounds:    qualification -> revival_1 -> revival_2

phase1 and phase2 eliminate the single slowest player on every course until
the survivors needed for the next phase remain. phase3 starts everyone with
lives; the slower half of each course loses one, and whenever the field
shrinks to 8, 4 or 2 players every survivor's lives are reset.

Every mutation is a read-compute-write unit of work run under the store's
per-stage lock, retried on optimistic-lock conflicts, and finished with a
full rank recalculation of the stage before it returns.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from smkc.tournament_core.concurrency import update_with_retry
from smkc.tournament_core.courses import select_course
from smkc.tournament_core.exceptions import (
    DuplicateEntryError,
    InsufficientPlayersError,
    StageFrozenError,
    ValidationError,
)
from smkc.tournament_core.ranking import finals_points_from_positions, ta_finals_positions
from smkc.tournament_core.scoring import calculate_ta_qualification_points
from smkc.tournament_core.store import TournamentContext
from smkc.tournament_core.structure import (
    CourseResult,
    Mode,
    PhaseRound,
    PhaseStatus,
    PhaseSummary,
    PromotionResult,
    RoundOutcome,
    Stage,
    StageEntry,
    StageFilter,
)
from smkc.tournament_core.timecodec import sum_required_courses, validate_times

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PhaseRule:
    """How a stage is filled and when it is done."""

    qual_rank_start: int
    qual_rank_end: int
    feeder: Optional[Stage] = None  # earlier stage whose survivors join
    feeder_limit: Optional[int] = None  # only the best N feeder survivors
    survivors_needed: int = 1
    has_lives: bool = False
    starting_lives: int = 0


PHASE_RULES = {
    Stage.PHASE1: PhaseRule(17, 24, survivors_needed=4),
    Stage.PHASE2: PhaseRule(13, 16, feeder=Stage.PHASE1, survivors_needed=4),
    Stage.PHASE3: PhaseRule(1, 12, feeder=Stage.PHASE2, survivors_needed=1, has_lives=True),
    Stage.REVIVAL_1: PhaseRule(17, 24, survivors_needed=4, starting_lives=1),
    Stage.REVIVAL_2: PhaseRule(
        13, 16, feeder=Stage.REVIVAL_1, feeder_limit=4, survivors_needed=4,
        starting_lives=1,
    ),
}

PHASE_LABELS = {
    Stage.PHASE1: "Phase 1",
    Stage.PHASE2: "Phase 2",
    Stage.PHASE3: "Phase 3 (Finals)",
    Stage.REVIVAL_1: "revival round 1",
    Stage.REVIVAL_2: "revival round 2",
}


def _run_stage_mutation(
    context: TournamentContext,
    tournament_id: str,
    stage: Stage,
    operation: Callable[[], T],
) -> T:
    """Run operation as one unit of work followed by a rank recalculation."""

    def unit_of_work():
        with context.store.atomic(tournament_id, stage):
            result = operation()
            _recalculate_ranks(context, tournament_id, stage)
            return result

    return update_with_retry(unit_of_work, context.config, context.sleep, context.rng)


# Ranking


def _phase_sort_key(entry: StageEntry):
    total_time = entry.total_time if entry.total_time is not None else math.inf
    return (entry.eliminated, -entry.lives, total_time, entry.player_id)


def _qualification_sort_key(entry: StageEntry):
    return (-entry.qualification_points, entry.total_time, entry.player_id)


def _recalculate_ranks(context: TournamentContext, tournament_id: str, stage: Stage):
    store = context.store
    entries = store.find_entries(StageFilter(tournament_id, stage))
    before = {
        e.player_id: (e.total_time, e.rank, e.qualification_points) for e in entries
    }

    for entry in entries:
        entry.total_time = sum_required_courses(entry.times, context.config.courses)

    if stage == Stage.QUALIFICATION:
        points = calculate_ta_qualification_points(
            {e.player_id: e.times for e in entries},
            context.course_scoring,
            context.config,
        )
        for entry in entries:
            entry.qualification_points = points[entry.player_id].total_points
        # Entries still missing a course keep their points but stay unranked
        ranked = sorted(
            (e for e in entries if e.total_time is not None),
            key=_qualification_sort_key,
        )
    elif stage.is_revival:
        ranked = sorted(
            (e for e in entries if e.total_time is not None),
            key=lambda e: (e.total_time, e.player_id),
        )
    else:
        ranked = sorted(entries, key=_phase_sort_key)

    ranks = {entry.player_id: position for position, entry in enumerate(ranked, start=1)}
    for entry in entries:
        entry.rank = ranks.get(entry.player_id)
        if (entry.total_time, entry.rank, entry.qualification_points) != before[entry.player_id]:
            store.save_entry(entry)


def recalculate_ranks(
    context: TournamentContext, tournament_id: str, stage: Stage = Stage.QUALIFICATION
) -> List[StageEntry]:
    """Recompute total times, qualification points and ranks of a stage."""
    stage = Stage(stage)
    _run_stage_mutation(context, tournament_id, stage, lambda: None)
    return context.store.find_entries(StageFilter(tournament_id, stage))


# Qualification and admin edits


def add_qualification_entries(
    context: TournamentContext,
    tournament_id: str,
    players: Iterable[Tuple[str, str]],
) -> PromotionResult:
    """Register players for Time-Attack qualification.

    Args:
        players: (player id, display name) pairs; players already registered
            are left untouched
    """
    players = list(players)
    if not players:
        raise ValidationError("Player list is empty")

    def operation():
        created = []
        for player_id, player_name in players:
            entry = StageEntry(
                tournament_id=tournament_id,
                player_id=player_id,
                player_name=player_name,
                stage=Stage.QUALIFICATION,
            )
            try:
                created.append(context.store.create_entry(entry))
            except DuplicateEntryError:
                continue
        return created

    created = _run_stage_mutation(context, tournament_id, Stage.QUALIFICATION, operation)
    return PromotionResult(
        entries=created,
        message=f"Added {len(created)} players to qualification",
    )


def record_times(
    context: TournamentContext,
    tournament_id: str,
    player_id: str,
    stage: Stage,
    times: Mapping[str, str],
) -> StageEntry:
    """Store course times for an entry and re-rank its stage.

    Times are merged into the existing ones; an empty string clears a course.

    Raises:
        ValidationError: On malformed times, unknown courses or a missing entry
        StageFrozenError: If the stage has been frozen
    """
    stage = Stage(stage)
    validated = validate_times(times, context.config.courses)

    def operation():
        if stage in context.store.frozen_stages(tournament_id):
            raise StageFrozenError(stage.value)
        entry = context.store.get_entry(tournament_id, player_id, stage)
        if entry is None:
            raise ValidationError(f"Player {player_id} has no {stage.value} entry")
        entry.times.update(validated)
        context.store.save_entry(entry)

    _run_stage_mutation(context, tournament_id, stage, operation)
    return context.store.get_entry(tournament_id, player_id, stage)


def override_entry(
    context: TournamentContext,
    tournament_id: str,
    player_id: str,
    stage: Stage,
    lives: Optional[int] = None,
    eliminated: Optional[bool] = None,
) -> StageEntry:
    """Administrative correction of lives and/or elimination.

    This is the only way an eliminated player becomes active again.
    """
    stage = Stage(stage)
    if lives is not None and lives < 0:
        raise ValidationError("Lives cannot be negative")

    def operation():
        entry = context.store.get_entry(tournament_id, player_id, stage)
        if entry is None:
            raise ValidationError(f"Player {player_id} has no {stage.value} entry")
        if lives is not None:
            entry.lives = lives
        if eliminated is not None:
            entry.eliminated = eliminated
        context.store.save_entry(entry)
        logger.info(
            "Admin override for %s in %s: lives=%s eliminated=%s",
            player_id, stage.value, entry.lives, entry.eliminated,
        )

    _run_stage_mutation(context, tournament_id, stage, operation)
    return context.store.get_entry(tournament_id, player_id, stage)


# Promotions


def _promotion_sources(
    context: TournamentContext, tournament_id: str, rule: PhaseRule
) -> List[StageEntry]:
    store = context.store
    qualifiers = store.find_entries(
        StageFilter(
            tournament_id,
            Stage.QUALIFICATION,
            rank_min=rule.qual_rank_start,
            rank_max=rule.qual_rank_end,
        )
    )
    if rule.feeder is None:
        return qualifiers

    survivors = store.find_entries(
        StageFilter(tournament_id, rule.feeder, eliminated=False)
    )
    if rule.feeder_limit is not None:
        survivors = survivors[: rule.feeder_limit]

    # Revival round 2 lists qualifiers first; the life-based phases lead with
    # the players coming up from the previous phase
    if rule.feeder.is_revival:
        return qualifiers + survivors
    return survivors + qualifiers


def _promote(context: TournamentContext, tournament_id: str, stage: Stage) -> PromotionResult:
    rule = PHASE_RULES[stage]
    label = PHASE_LABELS[stage]
    lives = context.config.initial_lives if rule.has_lives else rule.starting_lives

    def operation():
        sources = _promotion_sources(context, tournament_id, rule)
        if not sources:
            raise InsufficientPlayersError(
                f"No players found in qualification ranks "
                f"{rule.qual_rank_start}-{rule.qual_rank_end} for {label}"
            )

        created = []
        skipped = []
        for source in sources:
            if source.total_time is None:
                skipped.append(source.player_name or source.player_id)
                continue

            entry = StageEntry(
                tournament_id=tournament_id,
                player_id=source.player_id,
                player_name=source.player_name,
                stage=stage,
                lives=lives,
                eliminated=False,
                times=dict(source.times),
                total_time=source.total_time,
                rank=source.rank,
            )
            try:
                created.append(context.store.create_entry(entry))
            except DuplicateEntryError:
                logger.debug("%s already promoted to %s", source.player_id, stage.value)
                continue
        return created, skipped

    created, skipped = _run_stage_mutation(context, tournament_id, stage, operation)

    message = f"Promoted {len(created)} players to {label}"
    if rule.has_lives:
        message += f" with {lives} lives"
    logger.info("%s (tournament %s, skipped %d)", message, tournament_id, len(skipped))

    # Re-read so the returned entries carry the recalculated ranks
    refreshed = [
        context.store.get_entry(tournament_id, entry.player_id, stage) for entry in created
    ]
    return PromotionResult(entries=refreshed, skipped=skipped, message=message)


def promote_to_phase1(context: TournamentContext, tournament_id: str) -> PromotionResult:
    """Qualification ranks 17-24 enter phase1 without lives."""
    return _promote(context, tournament_id, Stage.PHASE1)


def promote_to_phase2(context: TournamentContext, tournament_id: str) -> PromotionResult:
    """phase1 survivors plus qualification ranks 13-16 enter phase2 without lives."""
    return _promote(context, tournament_id, Stage.PHASE2)


def promote_to_phase3(context: TournamentContext, tournament_id: str) -> PromotionResult:
    """phase2 survivors plus qualification ranks 1-12 enter phase3 with lives."""
    return _promote(context, tournament_id, Stage.PHASE3)


def promote_to_revival1(context: TournamentContext, tournament_id: str) -> PromotionResult:
    return _promote(context, tournament_id, Stage.REVIVAL_1)


def promote_to_revival2(context: TournamentContext, tournament_id: str) -> PromotionResult:
    return _promote(context, tournament_id, Stage.REVIVAL_2)


# Rounds


def _played_courses(rounds: List[PhaseRound]) -> List[str]:
    return [r.course for r in rounds]


def _open_new_round(context: TournamentContext, tournament_id: str, phase: Stage) -> PhaseRound:
    rounds = context.store.phase_rounds(tournament_id, phase)
    course = select_course(_played_courses(rounds), context.config.courses, context.rng)
    phase_round = PhaseRound(
        tournament_id=tournament_id,
        phase=phase,
        round_number=len(rounds) + 1,
        course=course,
    )
    return context.store.save_round(phase_round)


def start_phase_round(context: TournamentContext, tournament_id: str, phase: Stage) -> PhaseRound:
    """Pick the course for the next round of a phase.

    If a round is already open (course drawn, no results yet) it is returned
    instead of drawing again.
    """
    phase = _finals_phase(phase)

    def operation():
        rounds = context.store.phase_rounds(tournament_id, phase)
        if rounds and rounds[-1].is_open:
            return rounds[-1]
        phase_round = _open_new_round(context, tournament_id, phase)
        logger.info(
            "Round %d of %s in tournament %s will be played on %s",
            phase_round.round_number, phase.value, tournament_id, phase_round.course,
        )
        return phase_round

    return _run_stage_mutation(context, tournament_id, phase, operation)


def _close_round(
    context: TournamentContext,
    tournament_id: str,
    phase: Stage,
    results: List[CourseResult],
    eliminated: List[str],
    lives_reset: bool,
) -> PhaseRound:
    rounds = context.store.phase_rounds(tournament_id, phase)
    if rounds and rounds[-1].is_open:
        phase_round = rounds[-1]
    else:
        phase_round = _open_new_round(context, tournament_id, phase)
    phase_round.results = list(results)
    phase_round.eliminated = list(eliminated)
    phase_round.lives_reset = lives_reset
    return context.store.save_round(phase_round)


def _finals_phase(phase) -> Stage:
    phase = Stage(phase)
    if not phase.is_finals_phase:
        raise ValidationError(f"{phase.value} is not a finals phase")
    return phase


def _normalize_results(
    context: TournamentContext,
    results: Iterable[CourseResult],
    active: List[StageEntry],
) -> List[CourseResult]:
    """Check a round's results cover each active player exactly once."""
    active_ids = {entry.player_id for entry in active}
    seen = set()
    normalized = []
    for result in results:
        if result.player_id not in active_ids:
            raise ValidationError(f"Player {result.player_id} is not active in this phase")
        if result.player_id in seen:
            raise ValidationError(f"Duplicate result for player {result.player_id}")
        seen.add(result.player_id)

        time_ms = result.time_ms
        if time_ms is None:
            time_ms = context.config.retry_penalty_ms
        elif isinstance(time_ms, bool) or not isinstance(time_ms, int) or time_ms < 0:
            raise ValidationError(f"Invalid time for player {result.player_id}: {time_ms!r}")
        normalized.append(CourseResult(result.player_id, time_ms))

    missing = active_ids - seen
    if missing:
        raise ValidationError(f"Missing results for players: {', '.join(sorted(missing))}")
    return normalized


def process_elimination_round(
    context: TournamentContext,
    tournament_id: str,
    phase: Stage,
    results: Iterable[CourseResult],
) -> RoundOutcome:
    """Apply one course of a direct-elimination phase (phase1 or phase2).

    The single slowest active player is eliminated unless the phase already
    has no more than the survivors it needs. When several players tie for
    slowest, the first of them in the submitted order is eliminated.
    """
    phase = Stage(phase)
    if phase not in (Stage.PHASE1, Stage.PHASE2):
        raise ValidationError(f"{phase.value} is not a direct-elimination phase")
    rule = PHASE_RULES[phase]
    results = list(results)

    def operation():
        store = context.store
        active = store.find_entries(StageFilter(tournament_id, phase, eliminated=False))
        normalized = _normalize_results(context, results, active)

        if len(active) <= rule.survivors_needed:
            return RoundOutcome(round=None, active_remaining=len(active))

        # Stable sort: among tied slowest players the first submitted goes out
        slowest_first = sorted(normalized, key=lambda r: r.time_ms, reverse=True)
        slowest = slowest_first[0]
        if len(slowest_first) > 1 and slowest_first[1].time_ms == slowest.time_ms:
            tied = [r.player_id for r in slowest_first if r.time_ms == slowest.time_ms]
            logger.warning(
                "Tie for slowest in %s of tournament %s between %s; eliminating %s",
                phase.value, tournament_id, ", ".join(tied), slowest.player_id,
            )

        entry = next(e for e in active if e.player_id == slowest.player_id)
        entry.eliminated = True
        store.save_entry(entry)
        logger.info(
            "Eliminated %s from %s of tournament %s (slowest time %d ms)",
            entry.player_id, phase.value, tournament_id, slowest.time_ms,
        )

        phase_round = _close_round(
            context, tournament_id, phase, normalized, [entry.player_id], False
        )
        return RoundOutcome(
            round=phase_round,
            eliminated=[entry.player_id],
            active_remaining=len(active) - 1,
        )

    return _run_stage_mutation(context, tournament_id, phase, operation)


def process_life_round(
    context: TournamentContext,
    tournament_id: str,
    results: Iterable[CourseResult],
) -> RoundOutcome:
    """Apply one course of the life-based finals (phase3).

    The faster ceil(n/2) players are safe; everyone slower loses a life and is
    eliminated at zero. If this round eliminated someone and the number of active
    players now equals one of the life-reset thresholds, every remaining player
    gets the initial lives back.
    """
    phase = Stage.PHASE3
    config = context.config
    results = list(results)

    def operation():
        store = context.store
        active = store.find_entries(StageFilter(tournament_id, phase, eliminated=False))
        normalized = _normalize_results(context, results, active)

        if len(active) <= PHASE_RULES[phase].survivors_needed:
            return RoundOutcome(round=None, active_remaining=len(active))

        fastest_first = sorted(normalized, key=lambda r: r.time_ms)
        safe_count = math.ceil(len(fastest_first) / 2)
        by_player = {entry.player_id: entry for entry in active}

        eliminated = []
        for result in fastest_first[safe_count:]:
            entry = by_player[result.player_id]
            old_lives = entry.lives
            entry.lives = max(0, entry.lives - 1)
            if entry.lives <= 0:
                entry.eliminated = True
                eliminated.append(entry.player_id)
            by_player[entry.player_id] = store.save_entry(entry)
            logger.info(
                "%s %s in phase3 of tournament %s (lives %d -> %d)",
                entry.player_id,
                "eliminated" if entry.eliminated else "lost a life",
                tournament_id, old_lives, entry.lives,
            )

        remaining = [e for e in by_player.values() if not e.eliminated]
        # Only the round that brings the field down to a threshold resets lives
        lives_reset = bool(eliminated) and len(remaining) in config.life_reset_thresholds
        if lives_reset:
            for entry in remaining:
                if entry.lives != config.initial_lives:
                    entry.lives = config.initial_lives
                    store.save_entry(entry)
            logger.info(
                "Reset lives to %d for %d remaining players in tournament %s",
                config.initial_lives, len(remaining), tournament_id,
            )

        phase_round = _close_round(
            context, tournament_id, phase, normalized, eliminated, lives_reset
        )
        return RoundOutcome(
            round=phase_round,
            eliminated=eliminated,
            lives_reset=lives_reset,
            active_remaining=len(remaining),
        )

    return _run_stage_mutation(context, tournament_id, phase, operation)


# Status


def is_stage_complete(context: TournamentContext, tournament_id: str, stage: Stage) -> bool:
    """phase3 is won by the last player standing; phase1/phase2 are done once
    exactly the survivors needed for the next phase remain."""
    stage = _finals_phase(stage)
    entries = context.store.find_entries(StageFilter(tournament_id, stage))
    if not entries:
        return False
    active = sum(1 for e in entries if not e.eliminated)
    return active == PHASE_RULES[stage].survivors_needed


def get_phase_status(context: TournamentContext, tournament_id: str) -> PhaseStatus:
    status = PhaseStatus()
    for phase in (Stage.PHASE1, Stage.PHASE2, Stage.PHASE3):
        entries = context.store.find_entries(StageFilter(tournament_id, phase))
        if not entries:
            continue

        active = [e for e in entries if not e.eliminated]
        winner = None
        if phase == Stage.PHASE3 and len(active) == 1:
            winner = active[0].player_name or active[0].player_id
        status.phases[phase] = PhaseSummary(
            total=len(entries),
            active=len(active),
            eliminated=len(entries) - len(active),
            winner=winner,
        )
        status.current_phase = phase
    return status


def collect_ta_points(
    context: TournamentContext, tournament_id: str
) -> Tuple[Dict[str, int], Dict[str, int]]:
    """Time-Attack qualification and finals points for the overall ranking.

    Returns:
        (player id -> qualification points, player id -> finals points)
    """
    store = context.store
    qualification = store.find_entries(StageFilter(tournament_id, Stage.QUALIFICATION))
    points = calculate_ta_qualification_points(
        {e.player_id: e.times for e in qualification},
        context.course_scoring,
        context.config,
    )
    qualification_points = {pid: result.total_points for pid, result in points.items()}

    finals_entries = []
    finals_rounds = []
    for phase in (Stage.PHASE1, Stage.PHASE2, Stage.PHASE3):
        finals_entries.extend(store.find_entries(StageFilter(tournament_id, phase)))
        finals_rounds.extend(store.phase_rounds(tournament_id, phase))
    positions = ta_finals_positions(finals_entries, finals_rounds)
    finals_points = finals_points_from_positions(Mode.TA, positions, context.config)

    return qualification_points, finals_points
