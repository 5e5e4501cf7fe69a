"""
Tests for finals points and the overall ranking.
"""

import unittest

from smkc.tournament_core.config import EngineConfig
from smkc.tournament_core.exceptions import ValidationError
from smkc.tournament_core.ranking import (
    TA_FINALS_POINTS,
    assign_competition_ranks,
    calculate_overall_rankings,
    finals_points_from_positions,
    get_finals_points,
    ta_finals_positions,
)
from smkc.tournament_core.structure import Mode, PhaseRound, Stage, StageEntry


class TestFinalsPoints(unittest.TestCase):
    def test_ta_table(self):
        self.assertEqual(len(TA_FINALS_POINTS), 24)
        self.assertEqual(get_finals_points(Mode.TA, 1), 2000)
        self.assertEqual(get_finals_points(Mode.TA, 5), 800)
        self.assertEqual(get_finals_points(Mode.TA, 24), 90)

    def test_head_to_head_tables_share_tied_places(self):
        for mode in (Mode.BM, Mode.MR, Mode.GP):
            self.assertEqual(get_finals_points(mode, 5), 750)
            self.assertEqual(get_finals_points(mode, 6), 750)
            self.assertEqual(get_finals_points(mode, 12), 400)
            self.assertEqual(get_finals_points(mode, 24), 100)

    def test_out_of_table(self):
        self.assertEqual(get_finals_points(Mode.TA, 0), 0)
        self.assertEqual(get_finals_points(Mode.BM, 25), 0)
        self.assertEqual(get_finals_points("MR", -3), 0)

    def test_points_from_positions(self):
        points = finals_points_from_positions(Mode.BM, {"a": 1, "b": 2, "c": 4, "d": 4})
        self.assertEqual(points, {"a": 2000, "b": 1600, "c": 1000, "d": 1000})

    def test_points_capped_at_finals_ceiling(self):
        config = EngineConfig(finals_point_ceiling=1500)
        self.assertEqual(get_finals_points(Mode.TA, 1, config), 1500)
        self.assertEqual(get_finals_points(Mode.TA, 3, config), 1300)
        points = finals_points_from_positions(Mode.GP, {"a": 1, "b": 2}, config)
        self.assertEqual(points, {"a": 1500, "b": 1500})


class TestTAFinalsPositions(unittest.TestCase):
    def entry(self, pid, stage, lives=0, eliminated=False, total_time=None):
        return StageEntry(
            tournament_id="t1", player_id=pid, stage=stage, lives=lives,
            eliminated=eliminated, total_time=total_time,
        )

    def test_positions_across_phases(self):
        entries = [
            self.entry("winner", Stage.PHASE3, lives=2, total_time=5000),
            self.entry("third", Stage.PHASE3, lives=0, eliminated=True, total_time=1000),
            self.entry("second", Stage.PHASE3, lives=0, eliminated=True, total_time=900),
            self.entry("p2out", Stage.PHASE2, eliminated=True, total_time=100),
            self.entry("winner", Stage.PHASE2, total_time=5000),
            self.entry("p1out", Stage.PHASE1, eliminated=True, total_time=50),
            self.entry("qual", Stage.QUALIFICATION, total_time=10),
        ]
        self.assertEqual(
            ta_finals_positions(entries),
            {"winner": 1, "second": 2, "third": 3, "p2out": 4, "p1out": 5},
        )

    def test_later_knockouts_place_higher(self):
        entries = [
            self.entry("winner", Stage.PHASE3, lives=1, total_time=9000),
            self.entry("early", Stage.PHASE3, eliminated=True, total_time=1000),
            self.entry("late", Stage.PHASE3, eliminated=True, total_time=8000),
            self.entry("p1a", Stage.PHASE1, eliminated=True, total_time=100),
            self.entry("p1b", Stage.PHASE1, eliminated=True, total_time=200),
        ]
        rounds = [
            PhaseRound("t1", Stage.PHASE1, 1, "MC1", eliminated=["p1b"]),
            PhaseRound("t1", Stage.PHASE1, 2, "DP1", eliminated=["p1a"]),
            PhaseRound("t1", Stage.PHASE3, 3, "GV1", eliminated=["early"]),
            PhaseRound("t1", Stage.PHASE3, 7, "BC1", eliminated=["late"]),
        ]
        self.assertEqual(
            ta_finals_positions(entries, rounds),
            {"winner": 1, "late": 2, "early": 3, "p1a": 4, "p1b": 5},
        )

    def test_no_entries(self):
        self.assertEqual(ta_finals_positions([]), {})


class TestOverallRanking(unittest.TestCase):
    def test_competition_ranks(self):
        self.assertEqual(assign_competition_ranks([10, 10, 8, 8, 5], lambda v: v), [1, 1, 3, 3, 5])
        self.assertEqual(assign_competition_ranks([], lambda v: v), [])

    def test_tied_totals_share_rank(self):
        full_qualification = {"a": 1000, "b": 1000, "c": 1000}
        scores = calculate_overall_rankings(
            {mode: full_qualification for mode in Mode},
            {
                Mode.TA: {"a": 2000, "b": 2000, "c": 2000},
                Mode.BM: {"a": 1000, "b": 1000, "c": 500},
            },
        )
        self.assertEqual([s.total_points for s in scores], [7000, 7000, 6500])
        self.assertEqual([s.overall_rank for s in scores], [1, 1, 3])
        self.assertEqual([s.player_id for s in scores], ["a", "b", "c"])

    def test_categories_are_filled(self):
        scores = calculate_overall_rankings(
            {Mode.TA: {"a": 800}, Mode.GP: {"a": 300, "b": 900}},
            {Mode.MR: {"a": 1600}},
        )
        by_player = {s.player_id: s for s in scores}
        a = by_player["a"]
        self.assertEqual(a.ta_qualification_points, 800)
        self.assertEqual(a.gp_qualification_points, 300)
        self.assertEqual(a.bm_qualification_points, 0)
        self.assertEqual(a.mr_finals_points, 1600)
        self.assertEqual(a.total_points, 2700)
        self.assertEqual(by_player["b"].total_points, 900)
        self.assertEqual(a.overall_rank, 1)
        self.assertEqual(by_player["b"].overall_rank, 2)

    def test_finals_only_players_are_ignored(self):
        scores = calculate_overall_rankings({Mode.TA: {"a": 100}}, {Mode.TA: {"ghost": 2000}})
        self.assertEqual([s.player_id for s in scores], ["a"])

    def test_empty(self):
        self.assertEqual(calculate_overall_rankings({}), [])

    def test_points_outside_ceilings_are_rejected(self):
        with self.assertRaises(ValidationError):
            calculate_overall_rankings({Mode.BM: {"a": 1001}})
        with self.assertRaises(ValidationError):
            calculate_overall_rankings({Mode.BM: {"a": 10}}, {Mode.GP: {"a": 2001}})
        with self.assertRaises(ValidationError):
            calculate_overall_rankings({Mode.MR: {"a": -1}})

        config = EngineConfig(finals_point_ceiling=3000)
        scores = calculate_overall_rankings({Mode.BM: {"a": 10}}, {Mode.GP: {"a": 2500}}, config)
        self.assertEqual(scores[0].total_points, 2510)


if __name__ == "__main__":
    unittest.main()
