# user_state_db.py
"""
User Program State Database Layer

Handles all database operations for per-user program state:
- Creating the state row on first contact
- Target wake time, program start date, baseline completion
- The clinician-review flag (written only through the safety monitor)
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sleep_titration.models.base import get_session
from sleep_titration.models.user_program_state import UserProgramState, ReviewStatus
from sleep_titration.titration.time_of_day import parse_hhmm
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserStateRecord:
    user_id: str
    program_start_date: Optional[date]
    baseline_complete: bool
    target_wake_time: Optional[str]
    review_status: ReviewStatus
    flag_reason: Optional[str]
    flagged_at: Optional[datetime]

    @property
    def flagged_for_review(self) -> bool:
        return self.review_status == ReviewStatus.FLAGGED


def _to_record(row: UserProgramState) -> UserStateRecord:
    return UserStateRecord(
        user_id=row.user_id,
        program_start_date=row.program_start_date,
        baseline_complete=bool(row.baseline_complete),
        target_wake_time=row.target_wake_time,
        review_status=row.review_status or ReviewStatus.CLEAR,
        flag_reason=row.flag_reason,
        flagged_at=row.flagged_at,
    )


def _get_or_create_row(session, user_id: str) -> UserProgramState:
    row = session.query(UserProgramState).filter(UserProgramState.user_id == user_id).first()
    if row:
        return row
    row = UserProgramState(user_id=user_id, baseline_complete=False, review_status=ReviewStatus.CLEAR)
    session.add(row)
    try:
        session.flush()
    except IntegrityError:
        # Another writer created the row between our read and flush
        session.rollback()
        row = session.query(UserProgramState).filter(UserProgramState.user_id == user_id).one()
    return row


def get_user_state(user_id: str) -> Optional[UserStateRecord]:
    session = get_session()
    try:
        row = session.query(UserProgramState).filter(UserProgramState.user_id == user_id).first()
        return _to_record(row) if row else None
    except SQLAlchemyError as e:
        log_critical_error("Failed to load program state", e,
                           context="user_state_db.get_user_state", user_id=user_id)
        raise
    finally:
        session.close()


def get_or_create_user_state(user_id: str) -> UserStateRecord:
    session = get_session()
    try:
        row = _get_or_create_row(session, user_id)
        session.commit()
        return _to_record(row)
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error("Failed to create program state", e,
                           context="user_state_db.get_or_create_user_state", user_id=user_id)
        raise
    finally:
        session.close()


def set_target_wake_time(user_id: str, wake_time: str) -> UserStateRecord:
    """
    Store the user's target wake time as zero-padded 'HH:MM'.
    Raises ValueError for anything that is not a valid 24h time.
    """
    hour, minute = parse_hhmm(wake_time)
    normalized = f"{hour:02d}:{minute:02d}"

    session = get_session()
    try:
        row = _get_or_create_row(session, user_id)
        row.target_wake_time = normalized
        session.commit()
        logger.info(f"Target wake time set to {normalized}", extra={'user_id': user_id})
        return _to_record(row)
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error("Failed to set target wake time", e,
                           context="user_state_db.set_target_wake_time", user_id=user_id)
        raise
    finally:
        session.close()


def set_program_start_date(user_id: str, start_date: date) -> UserStateRecord:
    """Set program_start_date if it is not set yet; an existing value is kept."""
    session = get_session()
    try:
        row = _get_or_create_row(session, user_id)
        if row.program_start_date is None:
            row.program_start_date = start_date
            logger.info(f"Program started on {start_date}", extra={'user_id': user_id})
        session.commit()
        return _to_record(row)
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error("Failed to set program start date", e,
                           context="user_state_db.set_program_start_date", user_id=user_id)
        raise
    finally:
        session.close()


def mark_baseline_complete(user_id: str, program_start_date: Optional[date] = None) -> UserStateRecord:
    """
    Set baseline_complete. Never reverts; calling it again is a no-op.
    Also fills program_start_date when it is still empty.
    """
    session = get_session()
    try:
        row = _get_or_create_row(session, user_id)
        if not row.baseline_complete:
            row.baseline_complete = True
            logger.info("Baseline collection complete", extra={'user_id': user_id})
        if row.program_start_date is None and program_start_date is not None:
            row.program_start_date = program_start_date
        session.commit()
        return _to_record(row)
    except SQLAlchemyError as e:
        session.rollback()
        log_critical_error("Failed to mark baseline complete", e,
                           context="user_state_db.mark_baseline_complete", user_id=user_id)
        raise
    finally:
        session.close()


def mark_flagged(user_id: str, reason: str) -> UserStateRecord:
    """
    Move the user to FLAGGED and overwrite the reason.
    Clearing the flag is done by clinician tooling, not by this package.
    """
    session = get_session()
    try:
        row = _get_or_create_row(session, user_id)
        row.review_status = ReviewStatus.FLAGGED
        row.flag_reason = reason
        row.flagged_at = datetime.now(timezone.utc)
        session.commit()
        return _to_record(row)
    except SQLAlchemyError:
        session.rollback()
        raise
    finally:
        session.close()


def list_users_ready_for_titration() -> List[str]:
    """User ids with baseline complete and a target wake time, in stable order."""
    session = get_session()
    try:
        rows = session.query(UserProgramState.user_id).filter(
            UserProgramState.baseline_complete.is_(True),
            UserProgramState.target_wake_time.isnot(None),
        ).order_by(UserProgramState.user_id).all()
        return [r.user_id for r in rows]
    except SQLAlchemyError as e:
        log_critical_error("Failed to list users ready for titration", e,
                           context="user_state_db.list_users_ready_for_titration")
        raise
    finally:
        session.close()
