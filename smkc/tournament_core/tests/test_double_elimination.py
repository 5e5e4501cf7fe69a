"""
Tests for the double-elimination bracket used by the head-to-head finals.
"""

import unittest

from smkc.tournament_core.double_elimination import (
    COMPLETE,
    ONGOING,
    BracketPlayer,
    BracketSide,
    MatchNode,
    bracket_final_positions,
    calculate_match_progression,
    generate_double_elimination_bracket,
    record_match_result,
)
from smkc.tournament_core.config import EngineConfig
from smkc.tournament_core.exceptions import InsufficientPlayersError, ValidationError


def create_players(count):
    # Listed in reverse to check seeding sorts by qualifying rank
    return [BracketPlayer(f"s{rank}", rank, f"Seed {rank}") for rank in range(count, 0, -1)]


def next_ready_match(bracket):
    for match in bracket.matches():
        if match.is_ready and not match.completed:
            return match
    return None


def play_out(bracket):
    """Play every match with player1 winning 5-0 until nothing is ready."""
    played = []
    match = next_ready_match(bracket)
    while match is not None:
        record_match_result(bracket, match.id, bracket.target_wins, 0)
        played.append(match.id)
        match = next_ready_match(bracket)
    return played


class TestBracketGeneration(unittest.TestCase):
    def test_eight_player_bracket(self):
        bracket = generate_double_elimination_bracket(create_players(8))
        first_round = bracket.winners_round(1)
        self.assertEqual(len(first_round), 4)
        self.assertEqual(
            [(m.player1_id, m.player2_id) for m in first_round],
            [("s1", "s2"), ("s3", "s4"), ("s5", "s6"), ("s7", "s8")],
        )
        self.assertEqual(len(bracket.winners_bracket), 7)
        self.assertEqual(bracket.winners_rounds, 3)
        self.assertEqual(bracket.losers_bracket, [])
        self.assertTrue(bracket.grand_final.is_grand_final)
        self.assertEqual(bracket.grand_final.bracket, BracketSide.GRAND_FINAL)
        self.assertFalse(bracket.grand_final.is_ready)

        for match in bracket.winners_round(2) + bracket.winners_round(3):
            self.assertIsNone(match.player1_id)
            self.assertIsNone(match.player2_id)

    def test_field_is_cut_to_power_of_two(self):
        bracket = generate_double_elimination_bracket(create_players(6))
        self.assertEqual(sorted(bracket.players), ["s1", "s2", "s3", "s4"])
        self.assertEqual(len(bracket.winners_round(1)), 2)

    def test_target_wins_from_config(self):
        self.assertEqual(generate_double_elimination_bracket(create_players(4)).target_wins, 5)

        config = EngineConfig(bracket_target_wins=3)
        bracket = generate_double_elimination_bracket(create_players(4), config=config)
        self.assertEqual(bracket.target_wins, 3)
        match = record_match_result(bracket, "wb-r1-m1", 3, 1)
        self.assertTrue(match.completed)
        with self.assertRaises(ValidationError):
            record_match_result(bracket, "wb-r1-m2", 4, 0)

        # An explicit target still wins over the config
        bracket = generate_double_elimination_bracket(create_players(4), 7, config=config)
        self.assertEqual(bracket.target_wins, 7)

    def test_needs_two_players(self):
        with self.assertRaises(InsufficientPlayersError):
            generate_double_elimination_bracket(create_players(1))
        with self.assertRaises(InsufficientPlayersError):
            generate_double_elimination_bracket([])


class TestMatchProgression(unittest.TestCase):
    def setUp(self):
        self.match = MatchNode(id="m", bracket=BracketSide.WINNERS, bracket_position="wb-r1", round=1)
        self.final = MatchNode(
            id="gf", bracket=BracketSide.GRAND_FINAL, bracket_position="gf", round=1,
            is_grand_final=True,
        )

    def test_regular_match(self):
        self.assertEqual(calculate_match_progression(self.match, 5, 2), COMPLETE)
        self.assertEqual(calculate_match_progression(self.match, 0, 5), COMPLETE)
        self.assertEqual(calculate_match_progression(self.match, 4, 4), ONGOING)
        self.assertEqual(calculate_match_progression(self.match, 3, 3, target_wins=3), COMPLETE)

    def test_grand_final(self):
        self.assertEqual(calculate_match_progression(self.final, 5, 3), COMPLETE)
        self.assertEqual(calculate_match_progression(self.final, 4, 5), COMPLETE)
        self.assertEqual(calculate_match_progression(self.final, 4, 4), ONGOING)
        self.assertEqual(calculate_match_progression(self.final, 0, 0), ONGOING)


class TestRecordMatchResult(unittest.TestCase):
    def setUp(self):
        self.bracket = generate_double_elimination_bracket(create_players(8))
        self.first = self.bracket.winners_round(1)[0]

    def test_partial_then_complete(self):
        match = record_match_result(self.bracket, self.first.id, 3, 1)
        self.assertFalse(match.completed)
        self.assertIsNone(match.winner_id)

        match = record_match_result(self.bracket, self.first.id, 3, 5)
        self.assertTrue(match.completed)
        self.assertEqual(match.winner_id, "s2")
        self.assertEqual(match.loser_id, "s1")
        self.assertEqual(self.bracket.winners_round(2)[0].player1_id, "s2")
        self.assertEqual(self.bracket.losers_queue, ["s1"])

    def test_winners_fill_next_round_by_position(self):
        second = self.bracket.winners_round(1)[1]
        record_match_result(self.bracket, second.id, 5, 0)
        next_match = self.bracket.winners_round(2)[0]
        self.assertIsNone(next_match.player1_id)
        self.assertEqual(next_match.player2_id, "s3")

    def test_losers_are_paired_in_drop_order(self):
        for match in self.bracket.winners_round(1)[:2]:
            record_match_result(self.bracket, match.id, 5, 2)
        self.assertEqual(len(self.bracket.losers_bracket), 1)
        losers_match = self.bracket.losers_bracket[0]
        self.assertEqual((losers_match.player1_id, losers_match.player2_id), ("s2", "s4"))
        self.assertEqual(losers_match.bracket, BracketSide.LOSERS)
        self.assertEqual(losers_match.round, 1)
        self.assertEqual(self.bracket.losers_queue, [])

    def test_invalid_results(self):
        record_match_result(self.bracket, self.first.id, 2, 2)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.first.id, 1, 3)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.first.id, 6, 2)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.first.id, 5, 5)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.first.id, -1, 2)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, "nope", 1, 0)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.bracket.winners_round(2)[0].id, 1, 0)

        record_match_result(self.bracket, self.first.id, 5, 2)
        with self.assertRaises(ValidationError):
            record_match_result(self.bracket, self.first.id, 5, 3)


class TestFullBracket(unittest.TestCase):
    def test_eight_players_to_grand_final(self):
        bracket = generate_double_elimination_bracket(create_players(8))
        play_out(bracket)

        self.assertTrue(bracket.is_complete)
        self.assertEqual(bracket.winners_champion, "s1")
        self.assertEqual(
            (bracket.grand_final.player1_id, bracket.grand_final.player2_id), ("s1", "s5")
        )
        self.assertEqual(len(bracket.losers_bracket), 6)
        self.assertEqual(bracket.losers_queue, [])

        positions = bracket_final_positions(bracket)
        self.assertEqual(
            positions,
            {"s1": 1, "s5": 2, "s6": 3, "s2": 4, "s3": 4, "s4": 6, "s8": 6, "s7": 6},
        )

    def test_grand_final_waits_for_losers_bracket(self):
        bracket = generate_double_elimination_bracket(create_players(4))
        for match_id in ["wb-r1-m1", "wb-r1-m2", "wb-r2-m1"]:
            record_match_result(bracket, match_id, 5, 0)
        self.assertEqual(bracket.winners_champion, "s1")
        self.assertFalse(bracket.grand_final.is_ready)

        play_out(bracket)
        self.assertTrue(bracket.is_complete)
        self.assertEqual(bracket.grand_final.player1_id, "s1")

    def test_grand_final_loss_by_winners_champion(self):
        bracket = generate_double_elimination_bracket(create_players(2))
        record_match_result(bracket, "wb-r1-m1", 5, 1)
        self.assertEqual(
            (bracket.grand_final.player1_id, bracket.grand_final.player2_id), ("s1", "s2")
        )
        record_match_result(bracket, "gf", 4, 5)
        self.assertTrue(bracket.is_complete)
        self.assertEqual(bracket_final_positions(bracket), {"s2": 1, "s1": 2})

    def test_positions_before_grand_final(self):
        bracket = generate_double_elimination_bracket(create_players(4))
        for match_id in ["wb-r1-m1", "wb-r1-m2"]:
            record_match_result(bracket, match_id, 5, 0)
        losers_match = bracket.losers_bracket[0]
        record_match_result(bracket, losers_match.id, 5, 0)
        self.assertEqual(bracket_final_positions(bracket), {"s4": 3})


if __name__ == "__main__":
    unittest.main()
