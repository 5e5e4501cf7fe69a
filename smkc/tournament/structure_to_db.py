"""
Persist tournament_core structures through the Django ORM.

DjangoStageStore is the database-backed implementation of the engine's store
protocol. Stage mutations run inside ``transaction.atomic`` with the
tournament row locked, and entry writes only succeed when the stored version
still matches the one that was read.
"""

import copy
import logging
import random
from contextlib import contextmanager
from typing import Dict, List, Mapping, Optional

from django.db import IntegrityError, transaction
from django.db.models import F

from smkc.tournament.db_to_structure import (
    phase_round_to_structure,
    stage_entry_queryset,
    stage_entry_to_structure,
)
from smkc.tournament.models import PhaseRound as PhaseRoundModel
from smkc.tournament.models import PlayerTournamentScore as ScoreModel
from smkc.tournament.models import StageEntry as StageEntryModel
from smkc.tournament.models import Tournament
from smkc.tournament_core.config import engine_config_from_settings
from smkc.tournament_core.exceptions import DuplicateEntryError, StaleEntryError
from smkc.tournament_core.phases import collect_ta_points
from smkc.tournament_core.ranking import calculate_overall_rankings
from smkc.tournament_core.store import StageStore, TournamentContext
from smkc.tournament_core.structure import Mode, PlayerTournamentScore, Stage

logger = logging.getLogger(__name__)


class DjangoStageStore(StageStore):
    def find_entries(self, query):
        return [stage_entry_to_structure(entry) for entry in stage_entry_queryset(query)]

    def get_entry(self, tournament_id, player_id, stage):
        entry = (
            StageEntryModel.objects.select_related("player")
            .filter(tournament_id=tournament_id, player_id=player_id, stage=Stage(stage).value)
            .first()
        )
        return stage_entry_to_structure(entry) if entry else None

    def create_entry(self, entry):
        try:
            # Savepoint so a unique clash does not break the outer transaction
            with transaction.atomic():
                created = StageEntryModel.objects.create(
                    tournament_id=entry.tournament_id,
                    player_id=entry.player_id,
                    stage=entry.stage.value,
                    lives=entry.lives,
                    eliminated=entry.eliminated,
                    times=dict(entry.times),
                    total_time=entry.total_time,
                    rank=entry.rank,
                    qualification_points=entry.qualification_points,
                    version=0,
                )
        except IntegrityError as e:
            raise DuplicateEntryError(
                f"{entry.player_id} already has a {entry.stage.value} entry"
            ) from e
        return stage_entry_to_structure(
            StageEntryModel.objects.select_related("player").get(pk=created.pk)
        )

    def save_entry(self, entry):
        rows = StageEntryModel.objects.filter(
            tournament_id=entry.tournament_id,
            player_id=entry.player_id,
            stage=entry.stage.value,
        )
        updated = rows.filter(version=entry.version).update(
            lives=entry.lives,
            eliminated=entry.eliminated,
            times=dict(entry.times),
            total_time=entry.total_time,
            rank=entry.rank,
            qualification_points=entry.qualification_points,
            version=F("version") + 1,
        )
        if not updated:
            current = rows.values_list("version", flat=True).first()
            raise StaleEntryError(
                f"Version mismatch for {entry.player_id} in {entry.stage.value}: "
                f"expected {entry.version}, got {current}",
                current,
            )

        saved = copy.deepcopy(entry)
        saved.version = entry.version + 1
        return saved

    def phase_rounds(self, tournament_id, phase):
        rounds = PhaseRoundModel.objects.filter(
            tournament_id=tournament_id, phase=Stage(phase).value
        ).order_by("round_number")
        return [phase_round_to_structure(r) for r in rounds]

    def save_round(self, phase_round):
        results = None
        if phase_round.results is not None:
            results = [
                {"player_id": r.player_id, "time_ms": r.time_ms} for r in phase_round.results
            ]
        saved, _ = PhaseRoundModel.objects.update_or_create(
            tournament_id=phase_round.tournament_id,
            phase=phase_round.phase.value,
            round_number=phase_round.round_number,
            defaults={
                "course": phase_round.course,
                "results": results,
                "eliminated": list(phase_round.eliminated),
                "lives_reset": phase_round.lives_reset,
            },
        )
        return phase_round_to_structure(saved)

    def frozen_stages(self, tournament_id):
        frozen = Tournament.objects.values_list("frozen_stages", flat=True).get(pk=tournament_id)
        return {Stage(stage) for stage in frozen or []}

    @contextmanager
    def atomic(self, tournament_id, stage):
        with transaction.atomic():
            # Row lock serializes writers of the same tournament; backends
            # without row locks (sqlite) serialize writes anyway
            list(Tournament.objects.select_for_update().filter(pk=tournament_id))
            yield


def create_context(
    rng: Optional[random.Random] = None, **kwargs
) -> TournamentContext:
    """Engine context backed by the database and the SMKC_ENGINE setting."""
    return TournamentContext(
        store=DjangoStageStore(),
        config=engine_config_from_settings(),
        rng=rng or random.Random(),
        **kwargs,
    )


def freeze_stage(tournament: Tournament, stage: Stage):
    """Disallow further time edits on a stage."""
    stage = Stage(stage)
    with transaction.atomic():
        tournament = Tournament.objects.select_for_update().get(pk=tournament.pk)
        if stage.value not in tournament.frozen_stages:
            tournament.frozen_stages = tournament.frozen_stages + [stage.value]
            tournament.save(update_fields=["frozen_stages"])
    logger.info("Froze %s for tournament %s", stage.value, tournament)


def save_overall_rankings(
    tournament: Tournament, scores: List[PlayerTournamentScore]
) -> List[ScoreModel]:
    """Replace the stored ranking snapshot of a tournament.

    Scores are recomputed in full on every run, so the previous snapshot is
    deleted rather than patched.
    """
    with transaction.atomic():
        ScoreModel.objects.filter(tournament=tournament).delete()
        created = ScoreModel.objects.bulk_create(
            [
                ScoreModel(
                    tournament=tournament,
                    player_id=score.player_id,
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
                for score in scores
            ]
        )
    logger.info("Saved overall rankings for %d players in %s", len(created), tournament)
    return created


def calculate_and_save_overall_rankings(
    tournament: Tournament,
    qualification_points: Optional[Mapping[Mode, Mapping[str, int]]] = None,
    finals_points: Optional[Mapping[Mode, Mapping[str, int]]] = None,
    context: Optional[TournamentContext] = None,
) -> List[PlayerTournamentScore]:
    """Aggregate every mode and store the resulting ranking snapshot.

    Time-Attack points are derived from the stored stage entries; the
    head-to-head modes are passed in as player id -> points maps.

    Returns:
        The ranked scores that were saved
    """
    context = context or create_context()
    ta_qualification, ta_finals = collect_ta_points(context, str(tournament.pk))

    qualification: Dict[Mode, Mapping[str, int]] = dict(qualification_points or {})
    finals: Dict[Mode, Mapping[str, int]] = dict(finals_points or {})
    qualification[Mode.TA] = ta_qualification
    finals[Mode.TA] = ta_finals

    scores = calculate_overall_rankings(qualification, finals, context.config)
    save_overall_rankings(tournament, scores)
    return scores
