"""
Wall-clock arithmetic for prescribed windows.

Prescriptions are 'HH:MM' strings, not timestamps, so day rollover is handled
with minutes-from-midnight math. A bedtime rendered later than its wake time
(e.g. '23:00' with wake '07:00') means the night before.
"""

from datetime import datetime, time
from typing import Tuple, Union

MINUTES_PER_DAY = 24 * 60


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives; Python's round() is banker's rounding."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def parse_hhmm(value: str) -> Tuple[int, int]:
    """
    Parses 'HH:MM' (24h). Returns (hour, minute). Raises ValueError if invalid.
    """
    text = (value or "").strip()
    parts = text.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid HH:MM: {value}")
    h = int(parts[0])
    m = int(parts[1])
    if h < 0 or h > 23 or m < 0 or m > 59:
        raise ValueError(f"Invalid HH:MM: {value}")
    return h, m


def format_hhmm(minutes_from_midnight: int) -> str:
    minutes = minutes_from_midnight % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_minutes(value: Union[str, time, datetime]) -> int:
    """Minutes from midnight for an 'HH:MM' string, a time or a datetime."""
    if isinstance(value, str):
        h, m = parse_hhmm(value)
        return h * 60 + m
    return value.hour * 60 + value.minute


def to_signed_bedtime_minutes(value: Union[str, time, datetime]) -> int:
    """
    Minutes from midnight on a line where evening times are negative.

    Any hour >= 12 is treated as "before midnight": 23:00 -> -60, 00:30 -> 30.
    Applied to every bedtime, prescribed or actual, so both sides are compared
    on the same numeric line.
    """
    minutes = to_minutes(value)
    if minutes >= 12 * 60:
        minutes -= MINUTES_PER_DAY
    return minutes


def derive_bedtime(wake_time: str, time_in_bed_minutes: int) -> str:
    """
    Bedtime that gives `time_in_bed_minutes` in bed before `wake_time`.

    derive_bedtime("07:00", 480) -> "23:00" (the previous evening)
    derive_bedtime("08:00", 480) -> "00:00"
    """
    wake_minutes = to_minutes(wake_time)
    bedtime_minutes = wake_minutes - time_in_bed_minutes
    # Handle day boundary crossing
    bedtime_minutes %= MINUTES_PER_DAY
    return format_hhmm(bedtime_minutes)


calculate_bedtime = derive_bedtime


def minutes_between(bedtime: str, wake_time: str) -> int:
    """
    Minutes in bed from `bedtime` to the next occurrence of `wake_time`.
    Inverse of derive_bedtime for any time in bed shorter than a day.
    """
    return (to_minutes(wake_time) - to_minutes(bedtime)) % MINUTES_PER_DAY
