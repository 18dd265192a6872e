# safety_monitor.py
"""
Safety Monitor

Flags a user for clinician review when average sleep efficiency falls below
the clinical floor. The flag is a one-way ratchet: this module can only set
it, never clear it, and it never changes a titration decision.
"""
from sqlalchemy.exc import SQLAlchemyError

from sleep_titration.titration import user_state_db
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


def should_flag(avg_efficiency_percent: float) -> bool:
    return avg_efficiency_percent < get_titration_config().flag_threshold_percent


def baseline_flag_reason(avg_efficiency_percent: float) -> str:
    return f"Low baseline SE: {avg_efficiency_percent:.1f}%"


def weekly_flag_reason(avg_efficiency_percent: float) -> str:
    return f"Persistent low SE: {avg_efficiency_percent:.1f}%"


def flag_for_review(user_id: str, reason: str) -> bool:
    """
    Set the user's review flag and overwrite the reason. Idempotent.

    Best effort: a failed write is logged and reported as False so the caller
    can still persist its titration decision.
    """
    try:
        user_state_db.mark_flagged(user_id, reason)
    except SQLAlchemyError as e:
        log_critical_error(
            f"Failed to flag for review ({reason})",
            e,
            context="safety_monitor.flag_for_review",
            user_id=user_id,
        )
        return False

    logger.warning(f"Flagged for clinician review: {reason}", extra={'user_id': user_id})
    return True
