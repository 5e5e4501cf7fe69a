"""
The course table and the course cycle selector used by finals phase rounds.

Each (tournament, phase) keeps an ordered log of the courses it has played.
The log is split into cycles of one full pass over the table: a course played
in the current cycle is never drawn again until every course has been played,
after which the pool resets by itself.
"""

import random
from dataclasses import dataclass
from typing import List, Sequence

from smkc.tournament_core.exceptions import ConfigurationError


@dataclass(frozen=True)
class Course:
    abbr: str
    name: str
    cup: str


COURSE_INFO = (
    Course("MC1", "Mario Circuit 1", "Mushroom"),
    Course("DP1", "Donut Plains 1", "Mushroom"),
    Course("GV1", "Ghost Valley 1", "Mushroom"),
    Course("BC1", "Bowser Castle 1", "Mushroom"),
    Course("MC2", "Mario Circuit 2", "Mushroom"),
    Course("CI1", "Choco Island 1", "Flower"),
    Course("GV2", "Ghost Valley 2", "Flower"),
    Course("DP2", "Donut Plains 2", "Flower"),
    Course("BC2", "Bowser Castle 2", "Flower"),
    Course("MC3", "Mario Circuit 3", "Flower"),
    Course("KB1", "Koopa Beach 1", "Star"),
    Course("CI2", "Choco Island 2", "Star"),
    Course("VL1", "Vanilla Lake 1", "Star"),
    Course("BC3", "Bowser Castle 3", "Star"),
    Course("MC4", "Mario Circuit 4", "Star"),
    Course("DP3", "Donut Plains 3", "Special"),
    Course("KB2", "Koopa Beach 2", "Special"),
    Course("GV3", "Ghost Valley 3", "Special"),
    Course("VL2", "Vanilla Lake 2", "Special"),
    Course("RR", "Rainbow Road", "Special"),
)

COURSES = tuple(course.abbr for course in COURSE_INFO)


def available_courses(played: Sequence[str], courses: Sequence[str] = COURSES) -> List[str]:
    """Courses not yet played in the current cycle, in table order.

    Args:
        played: Every course selected so far for the phase, oldest first
        courses: The configured course table
    """
    cycle_size = len(courses)
    if cycle_size == 0:
        return []

    current_cycle_start = (len(played) // cycle_size) * cycle_size
    played_this_cycle = set(played[current_cycle_start:])
    return [course for course in courses if course not in played_this_cycle]


def select_course(
    played: Sequence[str],
    courses: Sequence[str] = COURSES,
    rng: random.Random = None,
) -> str:
    """Draw a course uniformly from the courses available in the current cycle.

    Raises:
        ConfigurationError: If the course table is empty
    """
    if not courses:
        raise ConfigurationError("No courses configured for course selection")

    # At most len(courses) - 1 courses are logged in the current cycle, so the
    # available pool is never empty here
    available = available_courses(played, courses)
    rng = rng or random.Random()
    return rng.choice(available)
