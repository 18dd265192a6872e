"""
Seam for the feedback-message collaborator.

The engine hands a finished decision to an external generator and stores
whatever text comes back on the new window. The text is never read back for
decision-making, and a failing generator never blocks the window.
"""
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Callable, Dict, Optional

from sleep_titration.titration.results import TitrationDecision
from sleep_titration.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedbackContext:
    user_id: str
    week_start_date: date
    decision_kind: str
    adjustment_minutes: int
    avg_sleep_efficiency_percent: float
    previous_time_in_bed_minutes: Optional[int]
    new_time_in_bed_minutes: int
    prescribed_bedtime: str
    prescribed_wake_time: str
    flagged: bool

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['week_start_date'] = self.week_start_date.isoformat()
        return data


FeedbackMessageGenerator = Callable[[FeedbackContext], str]


def build_feedback_context(user_id: str, week_start_date: date, decision: TitrationDecision) -> FeedbackContext:
    return FeedbackContext(
        user_id=user_id,
        week_start_date=week_start_date,
        decision_kind=decision.decision_kind.value,
        adjustment_minutes=decision.adjustment_minutes,
        avg_sleep_efficiency_percent=decision.avg_sleep_efficiency_percent,
        previous_time_in_bed_minutes=decision.previous_time_in_bed_minutes,
        new_time_in_bed_minutes=decision.new_time_in_bed_minutes,
        prescribed_bedtime=decision.prescribed_bedtime,
        prescribed_wake_time=decision.prescribed_wake_time,
        flagged=decision.flagged,
    )


def generate_feedback_message(
        generator: Optional[FeedbackMessageGenerator],
        context: FeedbackContext,
) -> Optional[str]:
    """Run the generator; on any failure log it and return None."""
    if generator is None:
        return None
    try:
        message = generator(context)
    except Exception as e:
        logger.error(f"Feedback message generation failed: {e}", exc_info=True,
                     extra={'user_id': context.user_id})
        return None
    if message is not None and not isinstance(message, str):
        logger.warning(f"Feedback generator returned {type(message).__name__}, ignoring",
                       extra={'user_id': context.user_id})
        return None
    return message
