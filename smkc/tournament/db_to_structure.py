"""
Transform database models to tournament_core structure representation.

Engine ids are strings; database primary keys are converted with str() on the
way out and passed back to the ORM as-is, which casts them.
"""

from typing import List

from django.db.models import F

from smkc.tournament.models import PhaseRound as PhaseRoundModel
from smkc.tournament.models import PlayerTournamentScore as ScoreModel
from smkc.tournament.models import StageEntry as StageEntryModel
from smkc.tournament_core.structure import (
    CourseResult,
    PhaseRound,
    PlayerTournamentScore,
    Stage,
    StageEntry,
    StageFilter,
)


def stage_entry_to_structure(entry: StageEntryModel) -> StageEntry:
    return StageEntry(
        tournament_id=str(entry.tournament_id),
        player_id=str(entry.player_id),
        player_name=entry.player.nickname,
        stage=Stage(entry.stage),
        lives=entry.lives,
        eliminated=entry.eliminated,
        times=dict(entry.times or {}),
        total_time=entry.total_time,
        rank=entry.rank,
        qualification_points=entry.qualification_points,
        version=entry.version,
    )


def phase_round_to_structure(phase_round: PhaseRoundModel) -> PhaseRound:
    results = None
    if phase_round.results is not None:
        results = [
            CourseResult(player_id=r["player_id"], time_ms=r["time_ms"])
            for r in phase_round.results
        ]
    return PhaseRound(
        tournament_id=str(phase_round.tournament_id),
        phase=Stage(phase_round.phase),
        round_number=phase_round.round_number,
        course=phase_round.course,
        results=results,
        eliminated=list(phase_round.eliminated or []),
        lives_reset=phase_round.lives_reset,
    )


def tournament_score_to_structure(score: ScoreModel) -> PlayerTournamentScore:
    return PlayerTournamentScore(
        player_id=str(score.player_id),
        ta_qualification_points=score.ta_qualification_points,
        bm_qualification_points=score.bm_qualification_points,
        mr_qualification_points=score.mr_qualification_points,
        gp_qualification_points=score.gp_qualification_points,
        ta_finals_points=score.ta_finals_points,
        bm_finals_points=score.bm_finals_points,
        mr_finals_points=score.mr_finals_points,
        gp_finals_points=score.gp_finals_points,
        total_points=score.total_points,
        overall_rank=score.overall_rank,
    )


def stage_entry_queryset(query: StageFilter):
    """The ORM equivalent of StageFilter.matches, ordered by rank (unranked last)."""
    queryset = StageEntryModel.objects.select_related("player").filter(
        tournament_id=query.tournament_id, stage=query.stage.value
    )
    if query.eliminated is not None:
        queryset = queryset.filter(eliminated=query.eliminated)
    if query.rank_min is not None:
        queryset = queryset.filter(rank__gte=query.rank_min)
    if query.rank_max is not None:
        queryset = queryset.filter(rank__lte=query.rank_max)
    return queryset.order_by(F("rank").asc(nulls_last=True), "player_id")


def tournament_scores(tournament) -> List[PlayerTournamentScore]:
    """The stored overall ranking snapshot of a tournament."""
    scores = ScoreModel.objects.filter(tournament=tournament).order_by(
        F("overall_rank").asc(nulls_last=True), "player_id"
    )
    return [tournament_score_to_structure(score) for score in scores]
