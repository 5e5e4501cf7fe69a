"""
Qualification point normalization.

Raw qualification results come in two shapes:

- Time-Attack: per-course lap times. Each course awards up to
  ``course_point_ceiling`` points through a pluggable interpolation strategy;
  summed over the 20 courses this gives a 0-1000 total.
- Battle / Match Race / Grand Prix: win/tie/loss match records. Raw match
  points (2 per win, 1 per tie) are normalized to 0-1000 against the maximum
  achievable for the player's scheduled matches.

Both paths return results keyed by player id. Players absent from the input
get no entry; callers treat a missing entry as zero.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from smkc.tournament_core.config import DEFAULT_CONFIG, EngineConfig
from smkc.tournament_core.ranking import assign_competition_ranks
from smkc.tournament_core.timecodec import parse_time


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# Time-Attack


class CourseScoringStrategy:
    """Awards points for one course given every valid time set on it."""

    def score(self, times: Mapping[str, int], ceiling: int) -> Dict[str, float]:
        """
        Args:
            times: player id -> positive time in ms (only valid times)
            ceiling: maximum points for the course

        Returns:
            player id -> points; faster times never score less than slower ones
        """
        raise NotImplementedError


class RankInterpolation(CourseScoringStrategy):
    """Linear interpolation over finishing positions.

    The fastest of n entrants gets the ceiling and the slowest gets zero. Tied
    times share the average of the positions they occupy.
    """

    def score(self, times, ceiling):
        ordered = sorted(times.items(), key=lambda item: item[1])
        count = len(ordered)
        if count == 0:
            return {}
        if count == 1:
            return {ordered[0][0]: float(ceiling)}

        table = [ceiling * (count - 1 - i) / (count - 1) for i in range(count)]
        points = {}
        i = 0
        while i < count:
            j = i
            while j < count and ordered[j][1] == ordered[i][1]:
                j += 1
            shared = sum(table[i:j]) / (j - i)
            for k in range(i, j):
                points[ordered[k][0]] = shared
            i = j
        return points


class TimeInterpolation(CourseScoringStrategy):
    """Linear interpolation between the session's best and worst times."""

    def score(self, times, ceiling):
        if not times:
            return {}
        best = min(times.values())
        worst = max(times.values())
        if best == worst:
            return {player_id: float(ceiling) for player_id in times}
        return {
            player_id: ceiling * (worst - time_ms) / (worst - best)
            for player_id, time_ms in times.items()
        }


DEFAULT_COURSE_SCORING = RankInterpolation()


@dataclass
class TAQualificationPoints:
    player_id: str
    course_points: Dict[str, float] = field(default_factory=dict)
    total_points: int = 0


def _course_times(times: Mapping[str, object], course: str) -> Optional[int]:
    value = times.get(course)
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_time(value)
        if value is None:
            return None
    return value if value > 0 else None


def calculate_ta_qualification_points(
    player_times: Mapping[str, Mapping[str, object]],
    strategy: CourseScoringStrategy = DEFAULT_COURSE_SCORING,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Dict[str, TAQualificationPoints]:
    """Time-Attack qualification points for every player in the session.

    Args:
        player_times: player id -> (course -> time string or ms). Missing,
            empty and non-positive times do not take part in a course.
        strategy: per-course interpolation policy
        config: supplies the course table and the per-course ceiling

    Returns:
        player id -> TAQualificationPoints, total floored to an integer
    """
    results = {
        player_id: TAQualificationPoints(player_id=player_id)
        for player_id in player_times
    }

    for course in config.courses:
        valid = {}
        for player_id, times in player_times.items():
            time_ms = _course_times(times or {}, course)
            if time_ms is not None:
                valid[player_id] = time_ms

        course_points = strategy.score(valid, config.course_point_ceiling)
        for player_id, result in results.items():
            result.course_points[course] = course_points.get(player_id, 0.0)

    for result in results.values():
        total = math.floor(sum(result.course_points.values()) + 1e-9)
        result.total_points = min(total, config.qualification_point_ceiling)

    return results


# Battle / Match Race / Grand Prix


@dataclass(frozen=True)
class MatchRecord:
    """Win/tie/loss record of one player in a head-to-head qualification."""

    player_id: str
    wins: int = 0
    ties: int = 0
    losses: int = 0
    rounds_won_diff: int = 0
    matches_scheduled: Optional[int] = None

    @property
    def matches_played(self) -> int:
        return self.wins + self.ties + self.losses

    @property
    def scheduled(self) -> int:
        if self.matches_scheduled is not None:
            return self.matches_scheduled
        return self.matches_played


@dataclass
class QualificationPoints:
    player_id: str
    match_points: int
    normalized_points: int
    rank: int = 0


@dataclass(frozen=True)
class GroupMatch:
    """A completed (or pending) head-to-head qualification match."""

    player1_id: str
    player2_id: str
    score1: int
    score2: int
    completed: bool = True


def calculate_match_points(wins: int, ties: int, losses: int = 0) -> int:
    """2 points per win, 1 per tie; losses score nothing."""
    return 2 * wins + ties


def normalize_points(
    match_points: int, max_match_points: int, ceiling: int = 1000
) -> int:
    if max_match_points <= 0:
        return 0
    return round_half_up(ceiling * match_points / max_match_points)


def calculate_qualification_points(
    records: Iterable[MatchRecord], config: EngineConfig = DEFAULT_CONFIG
) -> Dict[str, QualificationPoints]:
    """Normalized qualification points with standard competition ranks.

    Ranking sorts by normalized points, then raw match points; ranks are shared
    when normalized points are equal.
    """
    results = []
    for record in records:
        match_points = calculate_match_points(record.wins, record.ties, record.losses)
        normalized = normalize_points(
            match_points, 2 * record.scheduled, config.qualification_point_ceiling
        )
        results.append(
            QualificationPoints(
                player_id=record.player_id,
                match_points=match_points,
                normalized_points=normalized,
            )
        )

    results.sort(key=lambda r: (-r.normalized_points, -r.match_points, r.player_id))
    for result, rank in zip(
        results, assign_competition_ranks(results, lambda r: r.normalized_points)
    ):
        result.rank = rank

    return {result.player_id: result for result in results}


def build_match_records(
    matches: Iterable[GroupMatch],
    scheduled: Optional[Mapping[str, int]] = None,
) -> Dict[str, MatchRecord]:
    """Recompute every player's record from the completed matches.

    Records are always rebuilt from scratch so they cannot drift from the
    match list.

    Args:
        matches: qualification matches; incomplete ones are ignored
        scheduled: optional player id -> number of scheduled matches
    """
    tallies: Dict[str, List[int]] = {}

    def tally(player_id: str) -> List[int]:
        # wins, ties, losses, rounds won differential
        return tallies.setdefault(player_id, [0, 0, 0, 0])

    for match in matches:
        t1 = tally(match.player1_id)
        t2 = tally(match.player2_id)
        if not match.completed:
            continue
        if match.score1 > match.score2:
            t1[0] += 1
            t2[2] += 1
        elif match.score1 < match.score2:
            t1[2] += 1
            t2[0] += 1
        else:
            t1[1] += 1
            t2[1] += 1
        t1[3] += match.score1 - match.score2
        t2[3] += match.score2 - match.score1

    scheduled = scheduled or {}
    return {
        player_id: MatchRecord(
            player_id=player_id,
            wins=wins,
            ties=ties,
            losses=losses,
            rounds_won_diff=diff,
            matches_scheduled=scheduled.get(player_id),
        )
        for player_id, (wins, ties, losses, diff) in tallies.items()
    }


def validate_battle_scores(score1: int, score2: int, max_score: int = 5) -> Tuple[bool, str]:
    """Check a reported Battle Mode score pair.

    Returns:
        (is_valid, error message or "")
    """
    if not (0 <= score1 <= max_score and 0 <= score2 <= max_score):
        return (False, f"Score must be between 0 and {max_score}")
    if score1 == score2:
        return (False, "Scores must be different")
    return (True, "")
