from datetime import timedelta

from conftest import AS_OF
from sleep_titration.titration import user_state_db, weekly_orchestrator, window_db
from sleep_titration.titration.results import DecisionKind
from sleep_titration.titration.weekly_orchestrator import (
    ALREADY_PROCESSED,
    get_therapy_week_number,
    process_user_adjustment,
    run_weekly_adjustment_job,
    trigger_adjustment_for_user,
)


def _ready_user(seed_nights, user_id, end=AS_OF, **entry_kwargs):
    seed_nights(user_id, end=end, **entry_kwargs)
    user_state_db.set_target_wake_time(user_id, "07:00")


def test_first_run_creates_baseline_window(seed_nights):
    _ready_user(seed_nights, "u1")

    summary = run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)

    assert summary.week_start_date == AS_OF
    assert (summary.total_users, summary.successful, summary.failed, summary.skipped) == (1, 1, 0, 0)
    result = summary.results[0]
    assert result.success
    assert result.decision_kind == "Baseline"
    assert result.new_time_in_bed_minutes == 480

    window = window_db.find_window("u1", AS_OF)
    assert window.decision_kind is DecisionKind.BASELINE
    assert window.prescribed_bedtime == "23:00"
    assert window.prescribed_wake_time == "07:00"
    assert window.adjustment_minutes == 0
    assert window.feedback_message is None


def test_rerun_in_same_week_is_a_no_op(seed_nights):
    _ready_user(seed_nights, "u1")

    run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)
    second = run_weekly_adjustment_job(as_of=AS_OF + timedelta(days=3), inter_user_delay_seconds=0)

    assert (second.successful, second.failed, second.skipped) == (0, 0, 1)
    assert second.results[0].skipped
    assert second.results[0].error == ALREADY_PROCESSED
    assert window_db.count_windows("u1") == 1


def test_two_week_chain(seed_nights):
    _ready_user(seed_nights, "u1")
    assert get_therapy_week_number("u1") is None

    run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)
    assert get_therapy_week_number("u1") == 1

    next_week = AS_OF + timedelta(days=7)
    seed_nights("u1", end=next_week, count=7)
    summary = run_weekly_adjustment_job(as_of=next_week, inter_user_delay_seconds=0)

    assert summary.results[0].decision_kind == "Increase"
    window = window_db.find_window("u1", next_week)
    assert window.decision_kind is DecisionKind.INCREASE
    assert window.time_in_bed_minutes == 495
    assert window.prescribed_bedtime == "22:45"
    assert window.adjustment_minutes == 15
    assert get_therapy_week_number("u1") == 2


def test_one_users_failure_does_not_stop_the_batch(seed_nights):
    _ready_user(seed_nights, "u1")
    # Baseline completed long ago, nothing logged recently
    _ready_user(seed_nights, "u2", end=AS_OF - timedelta(days=20), count=5)
    _ready_user(seed_nights, "u3")

    summary = run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)

    assert [r.user_id for r in summary.results] == ["u1", "u2", "u3"]
    assert (summary.total_users, summary.successful, summary.failed, summary.skipped) == (3, 2, 1, 0)
    failed = summary.results[1]
    assert not failed.success
    assert failed.error == "Insufficient data - need 5 more entries"
    assert window_db.find_window("u2", AS_OF) is None


def test_unexpected_exception_is_isolated(seed_nights, monkeypatch):
    _ready_user(seed_nights, "u1")
    _ready_user(seed_nights, "u2")
    original = weekly_orchestrator.compute_baseline

    def flaky(user_id, as_of=None):
        if user_id == "u1":
            raise RuntimeError("connection reset")
        return original(user_id, as_of=as_of)

    monkeypatch.setattr(weekly_orchestrator, "compute_baseline", flaky)

    summary = run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)

    assert summary.results[0].error == "connection reset"
    assert summary.results[1].success
    assert (summary.successful, summary.failed) == (1, 1)


def test_concurrent_insert_is_reported_as_skipped(seed_nights, monkeypatch):
    _ready_user(seed_nights, "u1")
    window_db.create_window("u1", AS_OF - timedelta(days=7), "23:00", "07:00", 480, DecisionKind.BASELINE)
    window_db.create_window("u1", AS_OF, "23:00", "07:00", 480, DecisionKind.MAINTAIN)

    # Simulate another run inserting between the existence check and the insert
    monkeypatch.setattr(window_db, "find_window", lambda user_id, week_start_date: None)

    result = process_user_adjustment("u1", AS_OF, AS_OF)

    assert result.skipped
    assert not result.success
    assert window_db.count_windows("u1") == 2


def test_process_reports_missing_prerequisites(seed_nights):
    assert process_user_adjustment("ghost", AS_OF, AS_OF).error == "User not found"

    seed_nights("u1", count=7)
    assert process_user_adjustment("u1", AS_OF, AS_OF).error == "No target wake time set"

    seed_nights("u2", count=3)
    user_state_db.set_target_wake_time("u2", "07:00")
    assert process_user_adjustment("u2", AS_OF, AS_OF).error == "Baseline week not complete"

    summary = run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0)
    assert summary.total_users == 0


def test_feedback_message_is_stored(seed_nights):
    _ready_user(seed_nights, "u1")
    contexts = []

    def generator(context):
        contexts.append(context)
        return f"{context.decision_kind}: {context.prescribed_bedtime}-{context.prescribed_wake_time}"

    run_weekly_adjustment_job(as_of=AS_OF, message_generator=generator, inter_user_delay_seconds=0)

    assert window_db.find_window("u1", AS_OF).feedback_message == "Baseline: 23:00-07:00"
    assert contexts[0].to_dict()["week_start_date"] == AS_OF.isoformat()
    assert contexts[0].previous_time_in_bed_minutes is None


def test_failing_feedback_generator_does_not_block_window(seed_nights):
    _ready_user(seed_nights, "u1")

    def generator(context):
        raise TimeoutError("model unavailable")

    result = trigger_adjustment_for_user("u1", as_of=AS_OF, message_generator=generator)

    assert result.success
    assert window_db.find_window("u1", AS_OF).feedback_message is None


def test_manual_trigger_targets_the_current_week(seed_nights):
    _ready_user(seed_nights, "u1", end=AS_OF + timedelta(days=2))

    result = trigger_adjustment_for_user("u1", as_of=AS_OF + timedelta(days=2))

    assert result.success
    assert window_db.find_window("u1", AS_OF) is not None
    assert trigger_adjustment_for_user("u1", as_of=AS_OF + timedelta(days=4)).skipped


def test_delay_between_users_but_not_after_last(seed_nights, monkeypatch):
    for user_id in ("u1", "u2", "u3"):
        _ready_user(seed_nights, user_id)
    sleeps = []
    monkeypatch.setattr(weekly_orchestrator.time, "sleep", sleeps.append)

    run_weekly_adjustment_job(as_of=AS_OF, inter_user_delay_seconds=0.25)

    assert sleeps == [0.25, 0.25]
