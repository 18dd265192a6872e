# observation_db.py
"""
Sleep Observation Database Layer

Handles all database operations for nightly observations:
- Creating observations (manual entry or device import), one per user per night
- Explicit corrections, which recompute the derived metrics
- Querying and counting observations over a date range
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import asc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sleep_titration.models.base import get_session
from sleep_titration.models.sleep_observations import SleepObservation
from sleep_titration.titration.exceptions import (
    DuplicateObservationError,
    InvalidObservationError,
    ObservationNotFoundError,
)
from sleep_titration.titration.observation_schema import ObservationInput
from sleep_titration.titration.sleep_metrics import calculate_sleep_metrics
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger
from sleep_titration.utils.time_utils import local_today, to_local_wall_clock, to_utc

logger = get_logger(__name__)


@dataclass(frozen=True)
class ObservationRecord:
    user_id: str
    date: date
    bedtime: datetime
    final_wake_time: datetime
    out_of_bed_time: datetime
    sleep_onset_latency_minutes: int
    wake_after_sleep_onset_minutes: int
    number_of_awakenings: int
    subjective_quality: int
    time_in_bed_minutes: int
    total_sleep_time_minutes: int
    sleep_efficiency_percent: float
    source: str
    notes: Optional[str] = None


def _to_record(row: SleepObservation) -> ObservationRecord:
    return ObservationRecord(
        user_id=row.user_id,
        date=row.date,
        bedtime=row.bedtime,
        final_wake_time=row.final_wake_time,
        out_of_bed_time=row.out_of_bed_time,
        sleep_onset_latency_minutes=row.sleep_onset_latency_minutes,
        wake_after_sleep_onset_minutes=row.wake_after_sleep_onset_minutes,
        number_of_awakenings=row.number_of_awakenings,
        subjective_quality=row.subjective_quality,
        time_in_bed_minutes=row.time_in_bed_minutes,
        total_sleep_time_minutes=row.total_sleep_time_minutes,
        sleep_efficiency_percent=row.sleep_efficiency_percent,
        source=row.source,
        notes=row.notes,
    )


def _validate(entry) -> ObservationInput:
    if isinstance(entry, ObservationInput):
        return entry
    try:
        return ObservationInput.model_validate(entry)
    except ValidationError as e:
        details = {".".join(str(p) for p in err["loc"]) or "entry": err["msg"] for err in e.errors()}
        raise InvalidObservationError("Validation failed", details) from e


def _apply_entry(row: SleepObservation, data: ObservationInput) -> None:
    metrics = calculate_sleep_metrics(
        bedtime=to_utc(data.bedtime),
        out_of_bed_time=to_utc(data.out_of_bed_time),
        onset_latency_minutes=data.sleep_onset_latency_minutes,
        wake_after_onset_minutes=data.wake_after_sleep_onset_minutes,
    )
    row.bedtime = to_local_wall_clock(data.bedtime)
    row.final_wake_time = to_local_wall_clock(data.final_wake_time)
    row.out_of_bed_time = to_local_wall_clock(data.out_of_bed_time)
    row.sleep_onset_latency_minutes = data.sleep_onset_latency_minutes
    row.wake_after_sleep_onset_minutes = data.wake_after_sleep_onset_minutes
    row.number_of_awakenings = data.number_of_awakenings
    row.subjective_quality = data.subjective_quality
    row.time_in_bed_minutes = metrics.time_in_bed_minutes
    row.total_sleep_time_minutes = metrics.total_sleep_time_minutes
    row.sleep_efficiency_percent = metrics.sleep_efficiency_percent
    row.source = data.source
    row.notes = data.notes


def check_backfill_limit(night: date, as_of: Optional[date] = None) -> None:
    """Entries may only be created for the last `backfill_limit_days` nights, never the future."""
    today = as_of or local_today()
    earliest = today - timedelta(days=get_titration_config().backfill_limit_days)
    if night < earliest or night > today:
        raise InvalidObservationError(
            f"Entries can only be created for the last {get_titration_config().backfill_limit_days} days",
            {"date": f"{night} is outside {earliest}..{today}"},
        )


# =========================================================================
# Write Operations
# =========================================================================

def create_observation(user_id: str, entry, as_of: Optional[date] = None,
                       enforce_backfill_limit: bool = True) -> ObservationRecord:
    """
    Create one night's observation and derive its metrics.

    Args:
        user_id: Owner of the observation
        entry: ObservationInput or a dict accepted by it
        as_of: "Today" for the backfill check (defaults to the local date)
        enforce_backfill_limit: Device imports of older history pass False

    Returns:
        The stored observation

    Raises:
        InvalidObservationError: input failed validation
        DuplicateObservationError: the user already has an observation for that night
    """
    data = _validate(entry)
    if enforce_backfill_limit:
        check_backfill_limit(data.date, as_of)

    session = get_session()
    try:
        row = SleepObservation(user_id=user_id, date=data.date)
        _apply_entry(row, data)
        session.add(row)
        session.commit()
        logger.info(
            f"Recorded observation for {data.date}: TIB {row.time_in_bed_minutes}min, "
            f"SE {row.sleep_efficiency_percent:.1f}% [source: {row.source}]",
            extra={'user_id': user_id},
        )
        return _to_record(row)

    except IntegrityError as e:
        session.rollback()
        raise DuplicateObservationError(user_id, data.date) from e
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error(f"Failed to record observation for {data.date}", e,
                           context="observation_db.create_observation", user_id=user_id)
        raise
    finally:
        session.close()


def correct_observation(user_id: str, entry) -> ObservationRecord:
    """
    Replace an existing night's fields and recompute its metrics.
    This is the only path that changes a stored observation.
    """
    data = _validate(entry)
    session = get_session()
    try:
        row = session.query(SleepObservation).filter(
            SleepObservation.user_id == user_id,
            SleepObservation.date == data.date,
        ).first()
        if not row:
            raise ObservationNotFoundError(user_id, data.date)

        _apply_entry(row, data)
        row.corrected_at = datetime.now(timezone.utc)
        session.commit()
        logger.info(f"Corrected observation for {data.date}", extra={'user_id': user_id})
        return _to_record(row)

    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error(f"Failed to correct observation for {data.date}", e,
                           context="observation_db.correct_observation", user_id=user_id)
        raise
    finally:
        session.close()


# =========================================================================
# Queries
# =========================================================================

def get_observation(user_id: str, night: date) -> Optional[ObservationRecord]:
    session = get_session()
    try:
        row = session.query(SleepObservation).filter(
            SleepObservation.user_id == user_id,
            SleepObservation.date == night,
        ).first()
        return _to_record(row) if row else None
    finally:
        session.close()


def find_observations(user_id: str, start: date, end: date) -> List[ObservationRecord]:
    """
    Observations with start <= date <= end, oldest first.
    """
    session = get_session()
    try:
        rows = session.query(SleepObservation).filter(
            SleepObservation.user_id == user_id,
            SleepObservation.date >= start,
            SleepObservation.date <= end,
        ).order_by(asc(SleepObservation.date)).all()
        return [_to_record(r) for r in rows]

    except SQLAlchemyError as e:
        log_critical_error(f"Failed to fetch observations {start}..{end}", e,
                           context="observation_db.find_observations", user_id=user_id)
        raise
    finally:
        session.close()


def count_observations(user_id: str, start: date, end: date) -> int:
    session = get_session()
    try:
        return session.query(SleepObservation).filter(
            SleepObservation.user_id == user_id,
            SleepObservation.date >= start,
            SleepObservation.date <= end,
        ).count()

    except SQLAlchemyError as e:
        log_critical_error(f"Failed to count observations {start}..{end}", e,
                           context="observation_db.count_observations", user_id=user_id)
        raise
    finally:
        session.close()


def summarize_observations(observations: List[ObservationRecord]) -> Dict[str, Any]:
    """Mean efficiency, time in bed and total sleep time over a list of observations."""
    if not observations:
        return {'count': 0}
    count = len(observations)
    return {
        'count': count,
        'avg_sleep_efficiency_percent': sum(o.sleep_efficiency_percent for o in observations) / count,
        'avg_time_in_bed_minutes': sum(o.time_in_bed_minutes for o in observations) / count,
        'avg_total_sleep_time_minutes': sum(o.total_sleep_time_minutes for o in observations) / count,
    }
