# weekly_orchestrator.py
"""
Weekly Orchestrator
===================

Per-user, per-week state transition driver:

    no window -> Baseline window -> Increase | Decrease | Maintain window -> ...

Rules:
- At most one window per (user, week_start_date). An existing window for the
  target week means "already processed" and the user is skipped. The unique
  constraint behind window_db.create_window covers two runs racing past the
  existence check.
- Users are processed one at a time. A failure for one user is recorded in
  the job result and the batch moves on.
"""
import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sleep_titration.titration import user_state_db, window_db
from sleep_titration.titration.baseline import compute_baseline
from sleep_titration.titration.exceptions import DuplicateWindowError
from sleep_titration.titration.feedback import (
    FeedbackMessageGenerator,
    build_feedback_context,
    generate_feedback_message,
)
from sleep_titration.titration.results import TitrationDecision, describe_result
from sleep_titration.titration.titration_config import get_titration_config
from sleep_titration.titration.weekly_adjustment import compute_weekly_adjustment
from sleep_titration.utils.error_logging import log_critical_error, log_warning_banner
from sleep_titration.utils.logging_config import get_logger, log_standout_text
from sleep_titration.utils.time_utils import local_today, week_start_for

logger = get_logger(__name__)

ALREADY_PROCESSED = "Already processed this week"


@dataclass
class AdjustmentJobResult:
    user_id: str
    success: bool
    skipped: bool = False
    decision_kind: Optional[str] = None
    new_time_in_bed_minutes: Optional[int] = None
    avg_sleep_efficiency_percent: Optional[float] = None
    flagged: bool = False
    error: Optional[str] = None


@dataclass
class WeeklyJobSummary:
    week_start_date: date
    total_users: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[AdjustmentJobResult] = field(default_factory=list)


def _failure(user_id: str, error: str) -> AdjustmentJobResult:
    return AdjustmentJobResult(user_id=user_id, success=False, error=error)


def _skipped(user_id: str) -> AdjustmentJobResult:
    return AdjustmentJobResult(user_id=user_id, success=False, skipped=True, error=ALREADY_PROCESSED)


def process_user_adjustment(
        user_id: str,
        week_start_date: date,
        week_end_date: date,
        message_generator: Optional[FeedbackMessageGenerator] = None,
) -> AdjustmentJobResult:
    """
    Compute and persist one user's window for the week starting week_start_date.
    Never raises; every outcome is reported in the returned result.
    """
    try:
        state = user_state_db.get_user_state(user_id)
        if state is None:
            return _failure(user_id, "User not found")
        if not state.target_wake_time:
            return _failure(user_id, "No target wake time set")

        if window_db.find_window(user_id, week_start_date) is not None:
            return _skipped(user_id)

        if window_db.find_latest_window(user_id) is None:
            if not state.baseline_complete:
                return _failure(user_id, "Baseline week not complete")
            result = compute_baseline(user_id, as_of=week_end_date)
        else:
            result = compute_weekly_adjustment(user_id, week_end_date)

        if not isinstance(result, TitrationDecision):
            return _failure(user_id, describe_result(result))

        feedback_message = generate_feedback_message(
            message_generator, build_feedback_context(user_id, week_start_date, result)
        )

        try:
            window_db.create_window(
                user_id=user_id,
                week_start_date=week_start_date,
                prescribed_bedtime=result.prescribed_bedtime,
                prescribed_wake_time=result.prescribed_wake_time,
                time_in_bed_minutes=result.new_time_in_bed_minutes,
                decision_kind=result.decision_kind,
                adjustment_minutes=result.adjustment_minutes,
                avg_sleep_efficiency_percent=result.avg_sleep_efficiency_percent,
                feedback_message=feedback_message,
            )
        except DuplicateWindowError:
            logger.info("Window created concurrently by another run, skipping", extra={'user_id': user_id})
            return _skipped(user_id)

        return AdjustmentJobResult(
            user_id=user_id,
            success=True,
            decision_kind=result.decision_kind.value,
            new_time_in_bed_minutes=result.new_time_in_bed_minutes,
            avg_sleep_efficiency_percent=result.avg_sleep_efficiency_percent,
            flagged=result.flagged,
        )

    except Exception as e:
        log_critical_error("Adjustment failed", e,
                           context="weekly_orchestrator.process_user_adjustment", user_id=user_id)
        return _failure(user_id, str(e) or type(e).__name__)


def run_weekly_adjustment_job(
        as_of: Optional[date] = None,
        message_generator: Optional[FeedbackMessageGenerator] = None,
        inter_user_delay_seconds: Optional[float] = None,
) -> WeeklyJobSummary:
    """
    Run the weekly adjustment for every user with a completed baseline and a
    target wake time. Safe to re-run: already processed users are skipped.
    """
    cfg = get_titration_config()
    as_of = as_of or local_today()
    week_start = week_start_for(as_of, cfg.week_start_weekday)
    delay = cfg.inter_user_delay_seconds if inter_user_delay_seconds is None else inter_user_delay_seconds

    logger.info(f"Starting weekly adjustment job for week {week_start} (as of {as_of})")
    user_ids = user_state_db.list_users_ready_for_titration()
    logger.info(f"Found {len(user_ids)} qualifying users for weekly adjustment")

    summary = WeeklyJobSummary(week_start_date=week_start, total_users=len(user_ids))

    for index, user_id in enumerate(user_ids):
        result = process_user_adjustment(user_id, week_start, as_of, message_generator)
        summary.results.append(result)

        if result.skipped:
            summary.skipped += 1
            logger.info("Skipped - already processed this week", extra={'user_id': user_id})
            continue

        if result.success:
            summary.successful += 1
            logger.info(
                f"Weekly adjustment applied: {result.decision_kind}, "
                f"TIB {result.new_time_in_bed_minutes}min, SE {result.avg_sleep_efficiency_percent:.1f}%",
                extra={'user_id': user_id},
            )
        else:
            summary.failed += 1
            logger.error(f"Weekly adjustment failed: {result.error}", extra={'user_id': user_id})

        if delay > 0 and index < len(user_ids) - 1:
            time.sleep(delay)

    log_standout_text(
        logger,
        f"successful={summary.successful} failed={summary.failed} skipped={summary.skipped} "
        f"of {summary.total_users}",
        title=f"Weekly adjustment job completed (week {week_start})",
    )
    if summary.failed:
        failed_ids = ", ".join(r.user_id for r in summary.results if not r.success and not r.skipped)
        log_warning_banner(
            f"{summary.failed} of {summary.total_users} users were not adjusted: {failed_ids}",
            context="weekly_orchestrator.run_weekly_adjustment_job",
        )
    return summary


def trigger_adjustment_for_user(
        user_id: str,
        as_of: Optional[date] = None,
        message_generator: Optional[FeedbackMessageGenerator] = None,
) -> AdjustmentJobResult:
    """Manual single-user run for the week containing `as_of`."""
    as_of = as_of or local_today()
    week_start = week_start_for(as_of, get_titration_config().week_start_weekday)
    logger.info(f"Manual adjustment trigger for week {week_start}", extra={'user_id': user_id})
    return process_user_adjustment(user_id, week_start, as_of, message_generator)


def get_therapy_week_number(user_id: str) -> Optional[int]:
    """Each window is one therapy week; None while still in baseline."""
    window_count = window_db.count_windows(user_id)
    return window_count or None
