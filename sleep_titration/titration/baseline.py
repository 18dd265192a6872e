# baseline.py
"""
Baseline Aggregator

The baseline phase is observation-only: users log nights until at least
`min_entries` fall inside the trailing lookback window. After that the first
prescribed window is computed from their average time in bed, tightened for
users whose efficiency is already poor.
"""
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sleep_titration.titration import observation_db, user_state_db
from sleep_titration.titration.observation_db import ObservationRecord
from sleep_titration.titration.results import (
    ComputationError,
    DecisionKind,
    InsufficientData,
    PreconditionError,
    TitrationDecision,
    TitrationResult,
)
from sleep_titration.titration.safety_monitor import baseline_flag_reason, flag_for_review, should_flag
from sleep_titration.titration.time_of_day import derive_bedtime, round_half_up
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.utils.error_logging import log_critical_error
from sleep_titration.utils.logging_config import get_logger
from sleep_titration.utils.time_utils import local_today, trailing_window

logger = get_logger(__name__)


@dataclass(frozen=True)
class BaselineStatus:
    entries_logged: int
    entries_needed: int
    is_complete: bool
    days_remaining: int


def initial_time_in_bed(avg_time_in_bed: float, avg_total_sleep_time: float,
                        avg_efficiency: float) -> int:
    """
    First prescribed time in bed.

    Normally the rounded average time in bed. Below the tight-start threshold
    the window starts from average total sleep time plus a small buffer,
    which builds sleep pressure faster. Both are clamped to the TIB bounds.
    """
    cfg = get_titration_config()
    if avg_efficiency < cfg.tight_start_threshold_percent:
        return cfg.clamp_time_in_bed(round_half_up(avg_total_sleep_time) + cfg.tight_start_buffer_minutes)
    return cfg.clamp_time_in_bed(round_half_up(avg_time_in_bed))


def compute_baseline(user_id: str, as_of: Optional[date] = None) -> TitrationResult:
    """
    Compute the user's first prescribed window.

    Preconditions are checked in order and short-circuit:
    target wake time, then baseline completion, then observation count.
    A low average efficiency also flags the user, without changing the result.
    """
    as_of = as_of or local_today()
    try:
        return _compute_baseline(user_id, as_of)
    except Exception as e:
        log_critical_error("Baseline calculation failed", e,
                           context="baseline.compute_baseline", user_id=user_id)
        return ComputationError("Failed to calculate baseline sleep window")


def _compute_baseline(user_id: str, as_of: date) -> TitrationResult:
    cfg = get_titration_config()
    state = user_state_db.get_user_state(user_id)

    if state is None or not state.target_wake_time:
        return PreconditionError("no target wake time")
    if not state.baseline_complete:
        return PreconditionError("baseline not complete")

    start, end = trailing_window(as_of, cfg.lookback_days)
    observations = observation_db.find_observations(user_id, start, end)
    if len(observations) < cfg.min_entries:
        return InsufficientData(
            entries_needed=cfg.min_entries - len(observations),
            entries_found=len(observations),
        )

    summary = observation_db.summarize_observations(observations)
    avg_efficiency = summary['avg_sleep_efficiency_percent']
    time_in_bed = initial_time_in_bed(
        summary['avg_time_in_bed_minutes'],
        summary['avg_total_sleep_time_minutes'],
        avg_efficiency,
    )

    flag_reason = None
    if should_flag(avg_efficiency):
        flag_reason = baseline_flag_reason(avg_efficiency)
        flag_for_review(user_id, flag_reason)

    decision = TitrationDecision(
        decision_kind=DecisionKind.BASELINE,
        avg_sleep_efficiency_percent=avg_efficiency,
        new_time_in_bed_minutes=time_in_bed,
        prescribed_bedtime=derive_bedtime(state.target_wake_time, time_in_bed),
        prescribed_wake_time=state.target_wake_time,
        entries_used=len(observations),
        flagged=flag_reason is not None,
        flag_reason=flag_reason,
    )
    logger.info(
        f"Baseline computed from {len(observations)} nights: SE {avg_efficiency:.1f}%, "
        f"TIB {time_in_bed}min",
        extra={'user_id': user_id},
    )
    return decision


# =========================================================================
# Baseline progress
# =========================================================================

def check_and_update_baseline_status(user_id: str, as_of: Optional[date] = None) -> user_state_db.UserStateRecord:
    """
    Called after every logged observation.

    Starts the program clock on the first observation and completes the
    baseline once enough nights fall inside the lookback window.
    Completion is never undone.
    """
    as_of = as_of or local_today()
    cfg = get_titration_config()
    state = user_state_db.get_or_create_user_state(user_id)
    if state.baseline_complete:
        return state

    start, end = trailing_window(as_of, cfg.lookback_days)
    entry_count = observation_db.count_observations(user_id, start, end)

    if entry_count >= cfg.min_entries:
        return user_state_db.mark_baseline_complete(user_id, program_start_date=as_of)
    if state.program_start_date is None:
        return user_state_db.set_program_start_date(user_id, as_of)
    return state


def record_observation(user_id: str, entry, as_of: Optional[date] = None,
                       enforce_backfill_limit: bool = True) -> ObservationRecord:
    """Store one night and update the user's baseline progress."""
    record = observation_db.create_observation(
        user_id, entry, as_of=as_of, enforce_backfill_limit=enforce_backfill_limit
    )
    check_and_update_baseline_status(user_id, as_of=as_of)
    return record


def get_baseline_status(user_id: str, as_of: Optional[date] = None) -> BaselineStatus:
    as_of = as_of or local_today()
    cfg = get_titration_config()
    state = user_state_db.get_user_state(user_id)

    if state is not None and state.baseline_complete:
        return BaselineStatus(
            entries_logged=cfg.min_entries,
            entries_needed=0,
            is_complete=True,
            days_remaining=0,
        )

    start, end = trailing_window(as_of, cfg.lookback_days)
    entries_logged = observation_db.count_observations(user_id, start, end)
    entries_needed = max(0, cfg.min_entries - entries_logged)

    days_remaining = cfg.lookback_days
    if state is not None and state.program_start_date is not None:
        days_since_start = (as_of - state.program_start_date).days
        days_remaining = max(0, cfg.lookback_days - days_since_start)

    return BaselineStatus(
        entries_logged=entries_logged,
        entries_needed=entries_needed,
        is_complete=entries_needed == 0,
        days_remaining=days_remaining,
    )
