"""
Conversion between human-entered lap times and integer milliseconds.

Times are entered as M:SS.mmm or MM:SS.mmm. The millisecond fragment may have
one to three digits and is right-padded, so "1:23.4" means 1:23.400.
"""

import re
from typing import Dict, Iterable, Mapping, Optional

from smkc.tournament_core.exceptions import (
    InvalidTimeError,
    UnknownCourseError,
    ValidationError,
)

TIME_FORMAT = re.compile(r"([0-9]{1,2}):([0-9]{2})\.([0-9]{1,3})")

NO_TIME_DISPLAY = "-"


def parse_time(value: str) -> Optional[int]:
    """Parse a time string to milliseconds.

    Returns None for an empty string ("no time yet").

    Raises:
        InvalidTimeError: If the string is not M:SS.mmm or MM:SS.mmm
    """
    if value == "":
        return None

    match = TIME_FORMAT.fullmatch(value)
    if not match:
        raise InvalidTimeError(value)

    minutes = int(match.group(1))
    seconds = int(match.group(2))
    if seconds >= 60:
        raise InvalidTimeError(value)
    milliseconds = int(match.group(3).ljust(3, "0"))

    return minutes * 60000 + seconds * 1000 + milliseconds


def format_time(ms: Optional[int]) -> str:
    """Format milliseconds as M:SS.mmm ("-" for no time)."""
    if ms is None:
        return NO_TIME_DISPLAY
    if ms < 0:
        raise ValidationError(f"Time cannot be negative: {ms}")

    minutes, remainder = divmod(ms, 60000)
    seconds, milliseconds = divmod(remainder, 1000)
    return f"{minutes}:{seconds:02d}.{milliseconds:03d}"


def sum_required_courses(
    times: Optional[Mapping[str, str]], required: Iterable[str]
) -> Optional[int]:
    """Total of the required courses, or None while any of them is missing.

    A missing key and an empty string both count as "not entered yet".
    """
    if not times:
        return None

    total = 0
    for course in required:
        ms = parse_time(times.get(course, ""))
        if ms is None:
            return None
        total += ms
    return total


def validate_times(times: Mapping[str, str], courses: Iterable[str]) -> Dict[str, str]:
    """Check course codes and time strings before anything is written.

    Returns:
        A plain dict copy of the validated times
    """
    known = set(courses)
    validated = {}
    for course, value in times.items():
        if course not in known:
            raise UnknownCourseError(course)
        if not isinstance(value, str):
            raise ValidationError(f"Time for {course} must be a string")
        parse_time(value)
        validated[course] = value
    return validated
