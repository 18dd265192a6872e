# window_db.py
"""
Prescribed Window Database Layer

Windows are written once and never updated. The UNIQUE(user_id, week_start_date)
constraint makes a second insert for the same week fail, which is what keeps
the weekly run idempotent even when two runs race.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sleep_titration.models.base import get_session
from sleep_titration.models.prescribed_windows import PrescribedWindow
from sleep_titration.titration.exceptions import DuplicateWindowError
from sleep_titration.titration.results import DecisionKind
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class WindowRecord:
    user_id: str
    week_start_date: date
    prescribed_bedtime: str
    prescribed_wake_time: str
    time_in_bed_minutes: int
    avg_sleep_efficiency_percent: Optional[float]
    decision_kind: DecisionKind
    adjustment_minutes: int
    feedback_message: Optional[str] = None
    created_at: Optional[datetime] = None


def _to_record(row: PrescribedWindow) -> WindowRecord:
    return WindowRecord(
        user_id=row.user_id,
        week_start_date=row.week_start_date,
        prescribed_bedtime=row.prescribed_bedtime,
        prescribed_wake_time=row.prescribed_wake_time,
        time_in_bed_minutes=row.time_in_bed_minutes,
        avg_sleep_efficiency_percent=row.avg_sleep_efficiency_percent,
        decision_kind=DecisionKind(row.decision_kind),
        adjustment_minutes=row.adjustment_minutes,
        feedback_message=row.feedback_message,
        created_at=row.created_at,
    )


def create_window(
        user_id: str,
        week_start_date: date,
        prescribed_bedtime: str,
        prescribed_wake_time: str,
        time_in_bed_minutes: int,
        decision_kind: DecisionKind,
        adjustment_minutes: int = 0,
        avg_sleep_efficiency_percent: Optional[float] = None,
        feedback_message: Optional[str] = None,
) -> WindowRecord:
    """
    Insert the window for one user-week.

    Raises:
        DuplicateWindowError: a window for (user_id, week_start_date) already exists
    """
    session = get_session()
    try:
        row = PrescribedWindow(
            user_id=user_id,
            week_start_date=week_start_date,
            prescribed_bedtime=prescribed_bedtime,
            prescribed_wake_time=prescribed_wake_time,
            time_in_bed_minutes=time_in_bed_minutes,
            avg_sleep_efficiency_percent=avg_sleep_efficiency_percent,
            decision_kind=DecisionKind(decision_kind).value,
            adjustment_minutes=adjustment_minutes,
            feedback_message=feedback_message,
        )
        session.add(row)
        session.commit()
        logger.info(
            f"Created {row.decision_kind} window for week {week_start_date}: "
            f"{prescribed_bedtime}-{prescribed_wake_time} ({time_in_bed_minutes}min)",
            extra={'user_id': user_id},
        )
        return _to_record(row)

    except IntegrityError as e:
        session.rollback()
        # Either the (user, week) key or a CHECK constraint; only the former is a duplicate
        existing = session.query(PrescribedWindow.id).filter(
            PrescribedWindow.user_id == user_id,
            PrescribedWindow.week_start_date == week_start_date,
        ).first()
        if existing:
            raise DuplicateWindowError(user_id, week_start_date) from e
        log_critical_error(f"Rejected window for week {week_start_date}", e,
                           context="window_db.create_window", user_id=user_id)
        raise
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error(f"Failed to create window for week {week_start_date}", e,
                           context="window_db.create_window", user_id=user_id)
        raise
    finally:
        session.close()


def find_window(user_id: str, week_start_date: date) -> Optional[WindowRecord]:
    session = get_session()
    try:
        row = session.query(PrescribedWindow).filter(
            PrescribedWindow.user_id == user_id,
            PrescribedWindow.week_start_date == week_start_date,
        ).first()
        return _to_record(row) if row else None
    finally:
        session.close()


def find_latest_window(user_id: str) -> Optional[WindowRecord]:
    """The user's current prescription (greatest week_start_date)."""
    session = get_session()
    try:
        row = session.query(PrescribedWindow).filter(
            PrescribedWindow.user_id == user_id
        ).order_by(desc(PrescribedWindow.week_start_date)).first()
        return _to_record(row) if row else None
    finally:
        session.close()


def find_latest_window_on_or_before(user_id: str, day: date) -> Optional[WindowRecord]:
    """The window in force on `day`: most recent with week_start_date <= day."""
    session = get_session()
    try:
        row = session.query(PrescribedWindow).filter(
            PrescribedWindow.user_id == user_id,
            PrescribedWindow.week_start_date <= day,
        ).order_by(desc(PrescribedWindow.week_start_date)).first()
        return _to_record(row) if row else None
    finally:
        session.close()


def count_windows(user_id: str) -> int:
    session = get_session()
    try:
        return session.query(PrescribedWindow).filter(PrescribedWindow.user_id == user_id).count()
    except SQLAlchemyError as e:
        log_critical_error("Failed to count windows", e,
                           context="window_db.count_windows", user_id=user_id)
        raise
    finally:
        session.close()
