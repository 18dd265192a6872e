# weekly_adjustment.py
"""
Weekly Titration Algorithm

Three-zone controller on last week's average sleep efficiency (E) with a
fixed step and hard time-in-bed bounds:

    E >= 85        -> T + 15, capped at 540   (Increase)
    80 <= E < 85   -> T                       (Maintain)
    E < 80         -> T - 15, floored at 300  (Decrease)

When a bound stops the step, the decision is Maintain: the label reports what
actually happened to the window, not which zone E fell in.
"""
from datetime import date
from typing import Tuple

from sleep_titration.titration import observation_db, user_state_db, window_db
from sleep_titration.titration.baseline import compute_baseline
from sleep_titration.titration.results import (
    ComputationError,
    DecisionKind,
    InsufficientData,
    TitrationDecision,
    TitrationResult,
)
from sleep_titration.titration.safety_monitor import flag_for_review, should_flag, weekly_flag_reason
from sleep_titration.titration.time_of_day import derive_bedtime
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger
from sleep_titration.utils.time_utils import trailing_window

logger = get_logger(__name__)


def decide_adjustment(avg_efficiency: float, current_time_in_bed: int) -> Tuple[int, DecisionKind]:
    """Pure decision step. Returns (new time in bed, decision)."""
    cfg = get_titration_config()

    if avg_efficiency >= cfg.increase_threshold_percent:
        new_tib = min(current_time_in_bed + cfg.adjustment_step_minutes, cfg.max_time_in_bed_minutes)
        kind = DecisionKind.INCREASE if new_tib > current_time_in_bed else DecisionKind.MAINTAIN
    elif avg_efficiency >= cfg.maintain_threshold_percent:
        new_tib = current_time_in_bed
        kind = DecisionKind.MAINTAIN
    else:
        new_tib = max(current_time_in_bed - cfg.adjustment_step_minutes, cfg.min_time_in_bed_minutes)
        kind = DecisionKind.DECREASE if new_tib < current_time_in_bed else DecisionKind.MAINTAIN

    return new_tib, kind


def compute_weekly_adjustment(user_id: str, week_end_date: date) -> TitrationResult:
    """
    Next week's window from the nights in [week_end_date - 7d, week_end_date].

    Users without any window yet get the baseline computation instead.
    Flagging for low efficiency happens alongside and never alters the decision.
    """
    try:
        return _compute_weekly_adjustment(user_id, week_end_date)
    except Exception as e:
        log_critical_error("Weekly adjustment calculation failed", e,
                           context="weekly_adjustment.compute_weekly_adjustment", user_id=user_id)
        return ComputationError("Failed to calculate weekly adjustment")


def _compute_weekly_adjustment(user_id: str, week_end_date: date) -> TitrationResult:
    cfg = get_titration_config()

    current_window = window_db.find_latest_window(user_id)
    if current_window is None:
        logger.info("No existing window, computing baseline", extra={'user_id': user_id})
        return compute_baseline(user_id, as_of=week_end_date)

    start, end = trailing_window(week_end_date, cfg.lookback_days)
    observations = observation_db.find_observations(user_id, start, end)
    if len(observations) < cfg.min_entries:
        return InsufficientData(
            entries_needed=cfg.min_entries - len(observations),
            entries_found=len(observations),
        )

    avg_efficiency = observation_db.summarize_observations(observations)['avg_sleep_efficiency_percent']
    current_tib = current_window.time_in_bed_minutes
    new_tib, kind = decide_adjustment(avg_efficiency, current_tib)

    flag_reason = None
    if should_flag(avg_efficiency):
        flag_reason = weekly_flag_reason(avg_efficiency)
        flag_for_review(user_id, flag_reason)

    # A changed target wake time applies from the next window on
    state = user_state_db.get_user_state(user_id)
    wake_time = (state.target_wake_time if state and state.target_wake_time
                 else current_window.prescribed_wake_time)

    decision = TitrationDecision(
        decision_kind=kind,
        avg_sleep_efficiency_percent=avg_efficiency,
        new_time_in_bed_minutes=new_tib,
        prescribed_bedtime=derive_bedtime(wake_time, new_tib),
        prescribed_wake_time=wake_time,
        entries_used=len(observations),
        previous_time_in_bed_minutes=current_tib,
        flagged=flag_reason is not None,
        flag_reason=flag_reason,
    )
    logger.info(
        f"Weekly adjustment: SE {avg_efficiency:.1f}% over {len(observations)} nights, "
        f"{kind.value} {current_tib} -> {new_tib}min",
        extra={'user_id': user_id},
    )
    return decision
