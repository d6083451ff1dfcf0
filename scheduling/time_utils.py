"""
Clock-time arithmetic for training sessions.

Session times are 24-hour "HH:MM" strings. Every comparison goes through
integer minute offsets so that "09:55" and "13:20" order correctly.
"""

from typing import Optional


LATE_GRACE_MINUTES = 5
MINUTES_PER_DAY = 24 * 60


def to_minutes(clock: str) -> int:
    """
    Convert a clock time to minutes since midnight.

    Args:
        clock: Time string in "HH:MM" form (seconds, if present, are ignored)

    Returns:
        hour * 60 + minute

    Raises:
        ValueError: If the value is not a valid 24-hour clock time
    """
    if not isinstance(clock, str):
        raise ValueError(f"Invalid time value: {clock!r}")

    parts = clock.strip().split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid time format: {clock!r}")

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time value: {clock!r}")

    return hours * 60 + minutes


def format_minutes(total_minutes: int) -> str:
    """Convert minutes since midnight back to "HH:MM"."""
    if not 0 <= total_minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range: {total_minutes}")
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def normalize_clock(value: str) -> str:
    """Normalize "9:55" or "09:55:00" to the canonical "09:55"."""
    return format_minutes(to_minutes(value))


def is_valid_clock(value: Optional[str]) -> bool:
    """Check whether value is a usable clock time."""
    try:
        to_minutes(value)
    except ValueError:
        return False
    return True


def minutes_difference(scheduled: Optional[str], actual: Optional[str]) -> int:
    """
    Signed difference ``actual - scheduled`` in minutes.

    Negative means early, positive means late. Missing input on either side
    means there is nothing to compare yet and yields 0.
    """
    if not scheduled or not actual:
        return 0
    return to_minutes(actual) - to_minutes(scheduled)


def is_late(minutes_diff: int) -> bool:
    """A trainer is late once the difference exceeds the grace period."""
    return minutes_diff > LATE_GRACE_MINUTES


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    # Half-open [start, end): touching boundaries do not overlap.
    return a_start < b_end and a_end > b_start
