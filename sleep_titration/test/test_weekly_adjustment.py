from datetime import timedelta

import pytest

from conftest import AS_OF
from sleep_titration.titration import user_state_db, window_db
from sleep_titration.titration.results import (
    ComputationError,
    DecisionKind,
    InsufficientData,
    PreconditionError,
    TitrationDecision,
)
from sleep_titration.titration.weekly_adjustment import compute_weekly_adjustment, decide_adjustment

PREVIOUS_WEEK = AS_OF - timedelta(days=7)


def _prescribe(user_id, time_in_bed, wake="07:00", week=PREVIOUS_WEEK):
    from sleep_titration.titration.time_of_day import derive_bedtime
    return window_db.create_window(
        user_id=user_id,
        week_start_date=week,
        prescribed_bedtime=derive_bedtime(wake, time_in_bed),
        prescribed_wake_time=wake,
        time_in_bed_minutes=time_in_bed,
        decision_kind=DecisionKind.BASELINE,
    )


# ---------------------------------------------------------------------------
# Decision table
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("efficiency, current, expected", [
    (90.0, 420, (435, DecisionKind.INCREASE)),
    (85.0, 420, (435, DecisionKind.INCREASE)),
    (84.99, 420, (420, DecisionKind.MAINTAIN)),
    (80.0, 420, (420, DecisionKind.MAINTAIN)),
    (79.99, 420, (405, DecisionKind.DECREASE)),
    (65.0, 420, (405, DecisionKind.DECREASE)),
    (95.0, 530, (540, DecisionKind.INCREASE)),
    (95.0, 540, (540, DecisionKind.MAINTAIN)),
    (50.0, 310, (300, DecisionKind.DECREASE)),
    (50.0, 300, (300, DecisionKind.MAINTAIN)),
])
def test_decide_adjustment(efficiency, current, expected):
    assert decide_adjustment(efficiency, current) == expected


def test_decide_adjustment_stays_in_bounds_and_step():
    for current in range(300, 541, 5):
        for efficiency in (0.0, 69.9, 75.0, 80.0, 82.5, 85.0, 100.0):
            new_tib, kind = decide_adjustment(efficiency, current)
            assert 300 <= new_tib <= 540
            assert abs(new_tib - current) <= 15
            if kind is DecisionKind.MAINTAIN:
                assert new_tib == current
            elif kind is DecisionKind.INCREASE:
                assert new_tib > current
            else:
                assert new_tib < current


# ---------------------------------------------------------------------------
# Full computation against the store
# ---------------------------------------------------------------------------

def test_good_week_increases_time_in_bed(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 420)
    seed_nights("u1", time_in_bed=420, bed=(0, 0), efficiency=90.0)

    result = compute_weekly_adjustment("u1", AS_OF)

    assert isinstance(result, TitrationDecision)
    assert result.decision_kind is DecisionKind.INCREASE
    assert result.new_time_in_bed_minutes == 435
    assert result.prescribed_bedtime == "23:45"
    assert result.prescribed_wake_time == "07:00"
    assert result.previous_time_in_bed_minutes == 420
    assert result.adjustment_minutes == 15
    assert result.avg_sleep_efficiency_percent == pytest.approx(90.0)
    assert result.flagged is False


def test_poor_week_decreases_and_flags(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 420)
    seed_nights("u1", time_in_bed=420, bed=(0, 0), efficiency=65.0)

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.decision_kind is DecisionKind.DECREASE
    assert result.new_time_in_bed_minutes == 405
    assert result.prescribed_bedtime == "00:15"
    assert result.flagged is True
    assert result.flag_reason == "Persistent low SE: 65.0%"

    state = user_state_db.get_user_state("u1")
    assert state.flagged_for_review
    assert state.flag_reason == "Persistent low SE: 65.0%"


def test_increase_at_ceiling_is_maintain(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 540)
    seed_nights("u1", time_in_bed=540, bed=(22, 0), efficiency=95.0)

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.decision_kind is DecisionKind.MAINTAIN
    assert result.new_time_in_bed_minutes == 540
    assert result.adjustment_minutes == 0


def test_decrease_at_floor_is_maintain(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 300)
    seed_nights("u1", time_in_bed=300, bed=(2, 0), efficiency=75.0)

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.decision_kind is DecisionKind.MAINTAIN
    assert result.new_time_in_bed_minutes == 300
    assert result.prescribed_bedtime == "02:00"
    assert result.flagged is False


def test_four_entries_is_insufficient_five_is_enough(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 420)
    seed_nights("u1", count=4, time_in_bed=420, bed=(0, 0))

    assert compute_weekly_adjustment("u1", AS_OF) == InsufficientData(entries_needed=1, entries_found=4)

    seed_nights("u1", end=AS_OF - timedelta(days=4), count=1, time_in_bed=420, bed=(0, 0))
    result = compute_weekly_adjustment("u1", AS_OF)
    assert isinstance(result, TitrationDecision)
    assert result.entries_used == 5


def test_nights_outside_lookback_are_ignored(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 420)
    # Six nights that all end before the lookback range, then four inside it
    seed_nights("u1", end=AS_OF - timedelta(days=8), count=6, time_in_bed=420, bed=(0, 0))
    seed_nights("u1", end=AS_OF, count=4, time_in_bed=420, bed=(0, 0))

    result = compute_weekly_adjustment("u1", AS_OF)
    assert result == InsufficientData(entries_needed=1, entries_found=4)


def test_wake_time_falls_back_to_current_window(seed_nights):
    _prescribe("u1", 420, wake="06:30")
    seed_nights("u1", time_in_bed=420, bed=(23, 30), efficiency=82.0)

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.decision_kind is DecisionKind.MAINTAIN
    assert result.prescribed_wake_time == "06:30"
    assert result.prescribed_bedtime == "23:30"


def test_changed_target_wake_time_applies_to_next_window(seed_nights):
    user_state_db.set_target_wake_time("u1", "07:00")
    _prescribe("u1", 420)
    seed_nights("u1", time_in_bed=420, bed=(0, 0), efficiency=82.0)
    user_state_db.set_target_wake_time("u1", "6:00")

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.prescribed_wake_time == "06:00"
    assert result.prescribed_bedtime == "23:00"


def test_without_window_falls_back_to_baseline(seed_nights):
    seed_nights("u1", time_in_bed=480, bed=(23, 0), efficiency=90.0)
    user_state_db.set_target_wake_time("u1", "07:00")

    result = compute_weekly_adjustment("u1", AS_OF)

    assert result.decision_kind is DecisionKind.BASELINE
    assert result.new_time_in_bed_minutes == 480
    assert result.previous_time_in_bed_minutes is None


def test_without_window_or_wake_time_reports_precondition(db):
    assert compute_weekly_adjustment("nobody", AS_OF) == PreconditionError("no target wake time")


def test_unexpected_failure_becomes_computation_error(db, monkeypatch):
    def boom(user_id):
        raise RuntimeError("store offline")

    monkeypatch.setattr(window_db, "find_latest_window", boom)

    assert compute_weekly_adjustment("u1", AS_OF) == ComputationError("Failed to calculate weekly adjustment")
