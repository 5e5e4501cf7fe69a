"""
Stage storage protocol, the in-memory store and the engine context object.

The engine never talks to a database directly. Every call receives a
TournamentContext that carries the store, the rules, the random source and
the sleep function used for retry backoff, so tests can build isolated,
reproducible instances per run.
"""

import copy
import random
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from smkc.tournament_core.config import DEFAULT_CONFIG, EngineConfig
from smkc.tournament_core.exceptions import DuplicateEntryError, StaleEntryError
from smkc.tournament_core.scoring import DEFAULT_COURSE_SCORING, CourseScoringStrategy
from smkc.tournament_core.structure import PhaseRound, Stage, StageEntry, StageFilter


class StageStore:
    """Persistence operations the engine relies on.

    Entries handed out by a store are copies: changes only take effect through
    create_entry / save_entry.
    """

    def find_entries(self, query: StageFilter) -> List[StageEntry]:
        raise NotImplementedError

    def get_entry(
        self, tournament_id: str, player_id: str, stage: Stage
    ) -> Optional[StageEntry]:
        raise NotImplementedError

    def create_entry(self, entry: StageEntry) -> StageEntry:
        """Insert a new entry.

        Raises:
            DuplicateEntryError: If (tournament, player, stage) already exists
        """
        raise NotImplementedError

    def save_entry(self, entry: StageEntry) -> StageEntry:
        """Write an entry if its stored version still equals entry.version.

        Returns the entry with its version incremented.

        Raises:
            StaleEntryError: If the stored version moved on
        """
        raise NotImplementedError

    def phase_rounds(self, tournament_id: str, phase: Stage) -> List[PhaseRound]:
        """Rounds of a phase ordered by round number."""
        raise NotImplementedError

    def save_round(self, phase_round: PhaseRound) -> PhaseRound:
        raise NotImplementedError

    def frozen_stages(self, tournament_id: str) -> Set[Stage]:
        raise NotImplementedError

    def atomic(self, tournament_id: str, stage: Stage):
        """Context manager: per-(tournament, stage) write lock whose changes
        roll back on error."""
        raise NotImplementedError


class InMemoryStageStore(StageStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str, Stage], StageEntry] = {}
        self._rounds: Dict[Tuple[str, Stage], List[PhaseRound]] = {}
        self._frozen: Dict[str, Set[Stage]] = {}
        self._mutex = threading.RLock()
        self._stage_locks: Dict[Tuple[str, Stage], threading.RLock] = {}

    def find_entries(self, query):
        with self._mutex:
            found = [
                copy.deepcopy(entry)
                for entry in self._entries.values()
                if query.matches(entry)
            ]
        return sorted(found, key=lambda e: (e.rank is None, e.rank or 0, e.player_id))

    def get_entry(self, tournament_id, player_id, stage):
        with self._mutex:
            entry = self._entries.get((tournament_id, player_id, Stage(stage)))
            return copy.deepcopy(entry) if entry else None

    def create_entry(self, entry):
        with self._mutex:
            if entry.key in self._entries:
                raise DuplicateEntryError(
                    f"{entry.player_id} already has a {entry.stage.value} entry"
                )
            stored = copy.deepcopy(entry)
            stored.version = 0
            self._entries[entry.key] = stored
            return copy.deepcopy(stored)

    def save_entry(self, entry):
        with self._mutex:
            current = self._entries.get(entry.key)
            if current is None:
                raise StaleEntryError(
                    f"Entry for {entry.player_id} in {entry.stage.value} not found", -1
                )
            if current.version != entry.version:
                raise StaleEntryError(
                    f"Version mismatch: expected {entry.version}, got {current.version}",
                    current.version,
                )
            stored = copy.deepcopy(entry)
            stored.version = current.version + 1
            self._entries[entry.key] = stored
            return copy.deepcopy(stored)

    def phase_rounds(self, tournament_id, phase):
        with self._mutex:
            rounds = self._rounds.get((tournament_id, Stage(phase)), [])
            return [copy.deepcopy(r) for r in rounds]

    def save_round(self, phase_round):
        with self._mutex:
            rounds = self._rounds.setdefault(
                (phase_round.tournament_id, phase_round.phase), []
            )
            stored = copy.deepcopy(phase_round)
            for i, existing in enumerate(rounds):
                if existing.round_number == phase_round.round_number:
                    rounds[i] = stored
                    break
            else:
                rounds.append(stored)
                rounds.sort(key=lambda r: r.round_number)
            return copy.deepcopy(stored)

    def frozen_stages(self, tournament_id):
        with self._mutex:
            return set(self._frozen.get(tournament_id, set()))

    def freeze_stage(self, tournament_id: str, stage: Stage):
        with self._mutex:
            self._frozen.setdefault(tournament_id, set()).add(Stage(stage))

    def _stage_lock(self, tournament_id, stage):
        with self._mutex:
            return self._stage_locks.setdefault(
                (tournament_id, stage), threading.RLock()
            )

    @contextmanager
    def atomic(self, tournament_id, stage):
        stage = Stage(stage)
        with self._stage_lock(tournament_id, stage):
            with self._mutex:
                entries_snapshot = {
                    key: copy.deepcopy(entry)
                    for key, entry in self._entries.items()
                    if key[0] == tournament_id and key[2] == stage
                }
                rounds_snapshot = copy.deepcopy(
                    self._rounds.get((tournament_id, stage))
                )
            try:
                yield
            except BaseException:
                # Operations only write the stage they lock
                with self._mutex:
                    for key in [
                        k for k in self._entries
                        if k[0] == tournament_id and k[2] == stage
                    ]:
                        del self._entries[key]
                    self._entries.update(entries_snapshot)
                    if rounds_snapshot is None:
                        self._rounds.pop((tournament_id, stage), None)
                    else:
                        self._rounds[(tournament_id, stage)] = rounds_snapshot
                raise


@dataclass
class TournamentContext:
    """Everything an engine call needs besides its arguments."""

    store: StageStore = field(default_factory=InMemoryStageStore)
    config: EngineConfig = DEFAULT_CONFIG
    rng: random.Random = field(default_factory=random.Random)
    sleep: Callable[[float], None] = time.sleep
    course_scoring: CourseScoringStrategy = DEFAULT_COURSE_SCORING
