"""
Double-elimination finals for the head-to-head modes (Battle, Match Race,
Grand Prix).

The bracket is seeded from qualification ranks. Players who lose in the
winners bracket drop into a losers queue in the order they lose; the losers
bracket pairs that queue two at a time and sends its winners back to the end
of the queue. A loss in the losers bracket eliminates the player. The grand
final is the winners champion (player1) against the losers champion
(player2); there is no bracket reset.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from smkc.tournament_core.config import DEFAULT_CONFIG, EngineConfig
from smkc.tournament_core.exceptions import InsufficientPlayersError, ValidationError

logger = logging.getLogger(__name__)

ONGOING = "ongoing"
COMPLETE = "complete"

class BracketSide(str, Enum):
    WINNERS = "winners"
    LOSERS = "losers"
    GRAND_FINAL = "grand_final"


@dataclass(frozen=True)
class BracketPlayer:
    player_id: str
    qualifying_rank: int
    player_name: str = ""


@dataclass
class MatchNode:
    """A single first-to-N match of the bracket."""

    id: str
    bracket: BracketSide
    bracket_position: str
    round: int
    player1_id: Optional[str] = None
    player2_id: Optional[str] = None
    player1_wins: int = 0
    player2_wins: int = 0
    is_grand_final: bool = False
    completed: bool = False

    @property
    def is_ready(self) -> bool:
        return self.player1_id is not None and self.player2_id is not None

    @property
    def winner_id(self) -> Optional[str]:
        if not self.completed:
            return None
        return self.player1_id if self.player1_wins > self.player2_wins else self.player2_id

    @property
    def loser_id(self) -> Optional[str]:
        if not self.completed:
            return None
        return self.player2_id if self.player1_wins > self.player2_wins else self.player1_id


@dataclass
class DoubleEliminationBracket:
    players: Dict[str, BracketPlayer]
    winners_bracket: List[MatchNode]
    grand_final: MatchNode
    losers_bracket: List[MatchNode] = field(default_factory=list)
    target_wins: int = DEFAULT_CONFIG.bracket_target_wins
    # Players waiting for a losers-bracket opponent, in drop order
    losers_queue: List[str] = field(default_factory=list)
    # (player id, losers round) in elimination order
    eliminations: List[Tuple[str, int]] = field(default_factory=list)
    # Number of losers-bracket matches each player has won
    losers_level: Dict[str, int] = field(default_factory=dict)

    def matches(self) -> List[MatchNode]:
        return self.winners_bracket + self.losers_bracket + [self.grand_final]

    def get_match(self, match_id: str) -> MatchNode:
        for match in self.matches():
            if match.id == match_id:
                return match
        raise ValidationError(f"Unknown match {match_id}")

    def winners_round(self, round_number: int) -> List[MatchNode]:
        return [m for m in self.winners_bracket if m.round == round_number]

    @property
    def winners_rounds(self) -> int:
        return max(m.round for m in self.winners_bracket)

    @property
    def winners_champion(self) -> Optional[str]:
        final = self.winners_round(self.winners_rounds)[0]
        return final.winner_id

    @property
    def is_complete(self) -> bool:
        return self.grand_final.completed


def _bracket_size(player_count: int) -> int:
    size = 1
    while size * 2 <= player_count:
        size *= 2
    return size


def generate_double_elimination_bracket(
    players: Iterable[BracketPlayer],
    target_wins: Optional[int] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> DoubleEliminationBracket:
    """Build a seeded bracket from qualified players.

    Players are sorted by qualifying rank and the field is cut to the largest
    power of two not above the player count. Winners round 1 pairs seeds 1v2,
    3v4 and so on; later winners rounds and the grand final start empty and
    losers-bracket matches are created as players drop into it.

    target_wins defaults to config.bracket_target_wins.

    Raises:
        InsufficientPlayersError: With fewer than two players
    """
    if target_wins is None:
        target_wins = config.bracket_target_wins
    players = sorted(players, key=lambda p: (p.qualifying_rank, p.player_id))
    if len(players) < 2:
        raise InsufficientPlayersError("Need at least 2 players for bracket")
    if target_wins < 1:
        raise ValidationError("Target wins must be at least 1")

    size = _bracket_size(len(players))
    seeded = players[:size]
    if size < len(players):
        logger.info(
            "Bracket cut to %d of %d players; dropped %s",
            size, len(players), ", ".join(p.player_id for p in players[size:]),
        )

    winners = []
    for index in range(0, size, 2):
        winners.append(
            MatchNode(
                id=f"wb-r1-m{index // 2 + 1}",
                bracket=BracketSide.WINNERS,
                bracket_position="wb-r1",
                round=1,
                player1_id=seeded[index].player_id,
                player2_id=seeded[index + 1].player_id,
            )
        )

    round_number = 1
    matches_in_round = size // 2
    while matches_in_round > 1:
        round_number += 1
        matches_in_round //= 2
        for index in range(matches_in_round):
            winners.append(
                MatchNode(
                    id=f"wb-r{round_number}-m{index + 1}",
                    bracket=BracketSide.WINNERS,
                    bracket_position=f"wb-r{round_number}",
                    round=round_number,
                )
            )

    grand_final = MatchNode(
        id="gf",
        bracket=BracketSide.GRAND_FINAL,
        bracket_position="gf",
        round=1,
        is_grand_final=True,
    )

    return DoubleEliminationBracket(
        players={p.player_id: p for p in seeded},
        winners_bracket=winners,
        grand_final=grand_final,
        target_wins=target_wins,
    )


def calculate_match_progression(
    match: MatchNode,
    player1_wins: int,
    player2_wins: int,
    target_wins: Optional[int] = None,
) -> str:
    """Whether a match with the given win counts is ONGOING or COMPLETE."""
    if target_wins is None:
        target_wins = DEFAULT_CONFIG.bracket_target_wins
    if match.is_grand_final:
        if player2_wins == target_wins or player1_wins == target_wins:
            return COMPLETE
    elif player1_wins >= target_wins or player2_wins >= target_wins:
        return COMPLETE
    return ONGOING


def _advance_winner(bracket: DoubleEliminationBracket, match: MatchNode):
    if match.round == bracket.winners_rounds:
        return
    index = bracket.winners_round(match.round).index(match)
    target = bracket.winners_round(match.round + 1)[index // 2]
    if index % 2 == 0:
        target.player1_id = match.winner_id
    else:
        target.player2_id = match.winner_id


def _pair_losers_queue(bracket: DoubleEliminationBracket):
    while len(bracket.losers_queue) >= 2:
        player1 = bracket.losers_queue.pop(0)
        player2 = bracket.losers_queue.pop(0)
        round_number = 1 + max(
            bracket.losers_level.get(player1, 0), bracket.losers_level.get(player2, 0)
        )
        match = MatchNode(
            id=f"lb-m{len(bracket.losers_bracket) + 1}",
            bracket=BracketSide.LOSERS,
            bracket_position=f"lb-r{round_number}",
            round=round_number,
            player1_id=player1,
            player2_id=player2,
        )
        bracket.losers_bracket.append(match)
        logger.debug("Losers bracket match %s: %s vs %s", match.id, player1, player2)


def _fill_grand_final(bracket: DoubleEliminationBracket):
    if bracket.grand_final.is_ready:
        return
    champion = bracket.winners_champion
    losers_pending = any(not m.completed for m in bracket.losers_bracket)
    if champion is None or losers_pending or len(bracket.losers_queue) != 1:
        return
    bracket.grand_final.player1_id = champion
    bracket.grand_final.player2_id = bracket.losers_queue.pop(0)
    logger.info(
        "Grand final set: %s vs %s",
        bracket.grand_final.player1_id, bracket.grand_final.player2_id,
    )


def record_match_result(
    bracket: DoubleEliminationBracket, match_id: str, player1_wins: int, player2_wins: int
) -> MatchNode:
    """Update a match's win counts and move players on if it is decided.

    Win counts may only increase and never exceed the bracket's target.

    Raises:
        ValidationError: For unknown or undetermined matches, decided matches
            and invalid win counts
    """
    match = bracket.get_match(match_id)
    target = bracket.target_wins

    if not match.is_ready:
        raise ValidationError(f"Players for match {match_id} are not determined yet")
    if match.completed:
        raise ValidationError(f"Match {match_id} is already complete")
    for wins in (player1_wins, player2_wins):
        if isinstance(wins, bool) or not isinstance(wins, int):
            raise ValidationError(f"Win count must be an integer, got {wins!r}")
        if wins < 0 or wins > target:
            raise ValidationError(f"Win count must be between 0 and {target}")
    if player1_wins < match.player1_wins or player2_wins < match.player2_wins:
        raise ValidationError("Win counts cannot decrease")
    if player1_wins == target and player2_wins == target:
        raise ValidationError("Only one player can reach the target wins")

    match.player1_wins = player1_wins
    match.player2_wins = player2_wins
    if calculate_match_progression(match, player1_wins, player2_wins, target) != COMPLETE:
        return match

    match.completed = True
    winner, loser = match.winner_id, match.loser_id
    logger.info("Match %s won by %s over %s", match.id, winner, loser)

    if match.bracket == BracketSide.WINNERS:
        _advance_winner(bracket, match)
        bracket.losers_queue.append(loser)
    elif match.bracket == BracketSide.LOSERS:
        bracket.losers_level[winner] = match.round
        bracket.losers_queue.append(winner)
        bracket.eliminations.append((loser, match.round))
    else:
        return match

    _pair_losers_queue(bracket)
    _fill_grand_final(bracket)
    return match


def bracket_final_positions(bracket: DoubleEliminationBracket) -> Dict[str, int]:
    """Finals placements decided so far.

    1 and 2 go to the grand final winner and loser. Losers-bracket
    eliminations follow latest round first; players knocked out in the same
    losers round share a position.
    """
    positions: Dict[str, int] = {}
    if bracket.grand_final.completed:
        positions[bracket.grand_final.winner_id] = 1
        positions[bracket.grand_final.loser_id] = 2

    by_round: Dict[int, List[str]] = {}
    for player_id, round_number in bracket.eliminations:
        by_round.setdefault(round_number, []).append(player_id)

    next_position = 3
    for round_number in sorted(by_round, reverse=True):
        group = by_round[round_number]
        for player_id in group:
            positions[player_id] = next_position
        next_position += len(group)
    return positions
