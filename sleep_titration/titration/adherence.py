# adherence.py
"""
Adherence Evaluator

Percentage of nights where the user went to bed and got up within the
tolerance of the prescribed window. Display only; never feeds titration.

Bedtimes (prescribed and actual) are compared on a line where any hour >= 12
counts as minutes before midnight, so 23:50 vs 00:10 is 20 minutes apart.
Wake times are compared as plain minutes from midnight.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional

from sleep_titration.titration import observation_db, window_db
from sleep_titration.titration.time_of_day import round_half_up, to_minutes, to_signed_bedtime_minutes
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.titration.window_db import WindowRecord
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class NightAdherence:
    date: date
    bedtime_diff_minutes: int
    wake_diff_minutes: int
    adherent: bool


@dataclass(frozen=True)
class AdherenceReport:
    window: WindowRecord
    total_nights: int
    adherent_nights: int
    percent: int
    nights: List[NightAdherence] = field(default_factory=list)


def evaluate_adherence(user_id: str, start: date, end: date) -> Optional[AdherenceReport]:
    """
    Night-by-night adherence over [start, end] against the window in force on `end`.
    None when there is no such window or no observations in the range.
    """
    window = window_db.find_latest_window_on_or_before(user_id, end)
    if window is None:
        return None

    observations = observation_db.find_observations(user_id, start, end)
    if not observations:
        return None

    tolerance = get_titration_config().adherence_tolerance_minutes
    prescribed_bed = to_signed_bedtime_minutes(window.prescribed_bedtime)
    prescribed_wake = to_minutes(window.prescribed_wake_time)

    nights = []
    for obs in observations:
        bed_diff = abs(to_signed_bedtime_minutes(obs.bedtime) - prescribed_bed)
        wake_diff = abs(to_minutes(obs.out_of_bed_time) - prescribed_wake)
        nights.append(NightAdherence(
            date=obs.date,
            bedtime_diff_minutes=bed_diff,
            wake_diff_minutes=wake_diff,
            adherent=bed_diff <= tolerance and wake_diff <= tolerance,
        ))

    adherent = sum(1 for n in nights if n.adherent)
    return AdherenceReport(
        window=window,
        total_nights=len(nights),
        adherent_nights=adherent,
        percent=round_half_up(100 * adherent / len(nights)),
        nights=nights,
    )


def compute_adherence(user_id: str, start: date, end: date) -> Optional[int]:
    report = evaluate_adherence(user_id, start, end)
    if report is None:
        return None
    logger.debug(
        f"Adherence {start}..{end}: {report.adherent_nights}/{report.total_nights} nights ({report.percent}%)",
        extra={'user_id': user_id},
    )
    return report.percent


def compute_weekly_adherence(user_id: str, week_start_date: date) -> Optional[int]:
    """Adherence over the seven nights governed by the window starting on week_start_date."""
    return compute_adherence(user_id, week_start_date, week_start_date + timedelta(days=6))
