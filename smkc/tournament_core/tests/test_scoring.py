"""
Tests for qualification point normalization.
"""

import unittest

from smkc.tournament_core.config import EngineConfig
from smkc.tournament_core.scoring import (
    GroupMatch,
    MatchRecord,
    RankInterpolation,
    TimeInterpolation,
    build_match_records,
    calculate_match_points,
    calculate_qualification_points,
    calculate_ta_qualification_points,
    normalize_points,
    round_half_up,
    validate_battle_scores,
)


class TestCourseStrategies(unittest.TestCase):
    def test_rank_interpolation(self):
        points = RankInterpolation().score({"a": 1000, "b": 2000, "c": 3000}, 50)
        self.assertEqual(points, {"a": 50.0, "b": 25.0, "c": 0.0})

    def test_rank_interpolation_ties_share_average(self):
        points = RankInterpolation().score({"a": 1000, "b": 1000, "c": 3000}, 50)
        self.assertEqual(points["a"], 37.5)
        self.assertEqual(points["b"], 37.5)
        self.assertEqual(points["c"], 0.0)

    def test_single_entrant_gets_ceiling(self):
        self.assertEqual(RankInterpolation().score({"a": 1000}, 50), {"a": 50.0})
        self.assertEqual(RankInterpolation().score({}, 50), {})

    def test_time_interpolation(self):
        points = TimeInterpolation().score({"a": 1000, "b": 1500, "c": 3000}, 50)
        self.assertEqual(points["a"], 50.0)
        self.assertEqual(points["b"], 37.5)
        self.assertEqual(points["c"], 0.0)

    def test_time_interpolation_all_equal(self):
        points = TimeInterpolation().score({"a": 1000, "b": 1000}, 50)
        self.assertEqual(points, {"a": 50.0, "b": 50.0})


class TestTAQualificationPoints(unittest.TestCase):
    def setUp(self):
        self.config = EngineConfig(courses=("MC1", "DP1"))

    def test_points_per_course_and_total(self):
        results = calculate_ta_qualification_points(
            {
                "a": {"MC1": "1:00.000", "DP1": "1:00.000"},
                "b": {"MC1": "1:01.000", "DP1": "0:59.000"},
                "c": {"MC1": "1:02.000"},
            },
            config=self.config,
        )
        self.assertEqual(results["a"].course_points, {"MC1": 50.0, "DP1": 0.0})
        self.assertEqual(results["a"].total_points, 50)
        self.assertEqual(results["b"].total_points, 75)
        # Missing course scores nothing
        self.assertEqual(results["c"].course_points["DP1"], 0.0)
        self.assertEqual(results["c"].total_points, 0)

    def test_empty_and_zero_times_do_not_participate(self):
        results = calculate_ta_qualification_points(
            {
                "a": {"MC1": "1:00.000"},
                "b": {"MC1": ""},
                "c": {"MC1": 0},
            },
            config=self.config,
        )
        self.assertEqual(results["a"].course_points["MC1"], 50.0)
        self.assertEqual(results["b"].total_points, 0)
        self.assertEqual(results["c"].total_points, 0)

    def test_total_is_floored(self):
        results = calculate_ta_qualification_points(
            {
                "a": {"MC1": "1:00.000"},
                "b": {"MC1": "1:01.000"},
                "c": {"MC1": "1:02.000"},
                "d": {"MC1": "1:03.000"},
            },
            config=self.config,
        )
        # 50 * 2/3 = 33.33...
        self.assertEqual(results["b"].total_points, 33)

    def test_full_field_is_capped_at_ceiling(self):
        config = EngineConfig()
        times = {course: "1:00.000" for course in config.courses}
        results = calculate_ta_qualification_points({"solo": times}, config=config)
        self.assertEqual(results["solo"].total_points, 1000)

    def test_only_players_in_input(self):
        results = calculate_ta_qualification_points({}, config=self.config)
        self.assertEqual(results, {})

    def test_alternative_strategy(self):
        results = calculate_ta_qualification_points(
            {
                "a": {"MC1": "1:00.000"},
                "b": {"MC1": "1:00.500"},
                "c": {"MC1": "1:02.000"},
            },
            strategy=TimeInterpolation(),
            config=self.config,
        )
        self.assertEqual(results["b"].total_points, 37)


class TestMatchBasedPoints(unittest.TestCase):
    def test_match_points(self):
        self.assertEqual(calculate_match_points(3, 1, 2), 7)
        self.assertEqual(calculate_match_points(0, 0, 5), 0)

    def test_normalize_points(self):
        self.assertEqual(normalize_points(6, 6), 1000)
        self.assertEqual(normalize_points(3, 6), 500)
        self.assertEqual(normalize_points(1, 6), 167)
        self.assertEqual(normalize_points(0, 0), 0)

    def test_round_half_up(self):
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.4999), 2)

    def test_wins_rank_above_ties(self):
        results = calculate_qualification_points(
            [
                MatchRecord("tier", wins=0, ties=3, losses=0),
                MatchRecord("winner", wins=3, ties=0, losses=0),
            ]
        )
        self.assertEqual(results["winner"].normalized_points, 1000)
        self.assertEqual(results["tier"].normalized_points, 500)
        self.assertEqual(results["winner"].rank, 1)
        self.assertEqual(results["tier"].rank, 2)

    def test_scheduled_matches_are_the_denominator(self):
        results = calculate_qualification_points(
            [MatchRecord("a", wins=2, matches_scheduled=4)]
        )
        self.assertEqual(results["a"].normalized_points, 500)

    def test_no_matches_scores_zero(self):
        results = calculate_qualification_points([MatchRecord("idle")])
        self.assertEqual(results["idle"].normalized_points, 0)

    def test_equal_points_share_rank(self):
        results = calculate_qualification_points(
            [
                MatchRecord("a", wins=2, losses=1),
                MatchRecord("b", wins=2, losses=1),
                MatchRecord("c", wins=1, losses=2),
            ]
        )
        self.assertEqual(results["a"].rank, 1)
        self.assertEqual(results["b"].rank, 1)
        self.assertEqual(results["c"].rank, 3)


class TestBuildMatchRecords(unittest.TestCase):
    def test_records_from_matches(self):
        records = build_match_records(
            [
                GroupMatch("a", "b", 3, 1),
                GroupMatch("a", "c", 2, 2),
                GroupMatch("b", "c", 0, 4),
                GroupMatch("a", "d", 0, 0, completed=False),
            ]
        )
        self.assertEqual(records["a"].wins, 1)
        self.assertEqual(records["a"].ties, 1)
        self.assertEqual(records["a"].losses, 0)
        self.assertEqual(records["a"].rounds_won_diff, 2)
        self.assertEqual(records["b"].losses, 2)
        self.assertEqual(records["b"].rounds_won_diff, -6)
        self.assertEqual(records["c"].wins, 1)
        self.assertEqual(records["c"].ties, 1)
        # Pending matches register the player without counting
        self.assertEqual(records["d"].matches_played, 0)

    def test_scheduled_counts_are_carried(self):
        records = build_match_records([GroupMatch("a", "b", 1, 0)], scheduled={"a": 3})
        self.assertEqual(records["a"].scheduled, 3)
        self.assertEqual(records["b"].scheduled, 1)

    def test_validate_battle_scores(self):
        self.assertEqual(validate_battle_scores(3, 1), (True, ""))
        self.assertFalse(validate_battle_scores(2, 2)[0])
        self.assertFalse(validate_battle_scores(6, 0)[0])
        self.assertFalse(validate_battle_scores(-1, 3)[0])


if __name__ == "__main__":
    unittest.main()
