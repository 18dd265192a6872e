from __future__ import annotations

import os
from datetime import datetime, date, timedelta, timezone
from zoneinfo import ZoneInfo
from typing import Union

from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LOCAL_TZ = "Europe/London"

# Process-wide config; per-user timezones would need to be threaded through explicitly.
GLOBAL_CONFIG = {
    "local_timezone": os.environ.get("SLEEP_TITRATION_TZ") or DEFAULT_LOCAL_TZ
}


def get_local_timezone() -> ZoneInfo:
    """
    Returns the configured local timezone.
    Falls back to UTC if misconfigured.
    """
    tz_name = GLOBAL_CONFIG.get("local_timezone") or DEFAULT_LOCAL_TZ
    try:
        return ZoneInfo(tz_name)
    except Exception as e:
        logger.error(f"Invalid timezone '{tz_name}', falling back to UTC: {e}")
        return ZoneInfo("UTC")


def _parse_iso_like(value: str) -> datetime:
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Invalid datetime string: {value}") from e


def _coerce_datetime(value: Union[str, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return _parse_iso_like(value)
    raise TypeError(f"Unsupported datetime value: {type(value)}")


def to_local_wall_clock(value: Union[str, datetime]) -> datetime:
    """
    Returns a naive datetime expressing `value` on the local wall clock.

    Observations are stored as wall-clock times because adherence compares
    hours and minutes, not instants.
    - Naive input is assumed to already be local.
    - Aware input is converted to the configured local timezone.
    """
    dt = _coerce_datetime(value)
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(get_local_timezone()).replace(tzinfo=None)


def to_utc(value: Union[str, datetime]) -> datetime:
    """
    The absolute instant of `value` as an aware UTC datetime.

    Naive input is read as local wall-clock time; an ambiguous wall time on
    the autumn clock change resolves to its first occurrence (fold=0).
    Durations must be taken between these values, never between wall-clock
    times, or a night spanning a clock change is off by the DST offset.
    """
    dt = _coerce_datetime(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=get_local_timezone())
    return dt.astimezone(timezone.utc)


def local_today() -> date:
    return datetime.now(get_local_timezone()).date()


def week_start_for(day: date, week_start_weekday: int = 0) -> date:
    """
    The anchor date of the week containing `day`.

    week_start_weekday follows date.weekday(): 0 = Monday ... 6 = Sunday.
    """
    offset = (day.weekday() - week_start_weekday) % 7
    return day - timedelta(days=offset)


def trailing_window(end: date, lookback_days: int) -> tuple[date, date]:
    """Inclusive [end - lookback_days, end] range."""
    return end - timedelta(days=lookback_days), end
