"""
Sleep-restriction titration engine

Components:
- calculate_sleep_metrics(): per-night time in bed, total sleep, efficiency
- derive_bedtime(): bedtime from wake time and allowed time in bed
- compute_baseline(): first prescribed window after the baseline phase
- compute_weekly_adjustment(): weekly bounded change of time in bed
- compute_adherence(): share of nights that followed the window
- flag_for_review(): one-way clinician-review flag
- run_weekly_adjustment_job(): idempotent weekly batch over all users
"""

from sleep_titration.titration.sleep_metrics import SleepMetrics, calculate_sleep_metrics
from sleep_titration.titration.time_of_day import calculate_bedtime, derive_bedtime, minutes_between
from sleep_titration.titration.results import (
    ComputationError,
    DecisionKind,
    InsufficientData,
    PreconditionError,
    TitrationDecision,
    TitrationResult,
)
from sleep_titration.titration.baseline import (
    compute_baseline,
    get_baseline_status,
    record_observation,
)
from sleep_titration.titration.weekly_adjustment import compute_weekly_adjustment, decide_adjustment
from sleep_titration.titration.adherence import compute_adherence, compute_weekly_adherence
from sleep_titration.titration.safety_monitor import flag_for_review
from sleep_titration.titration.weekly_orchestrator import (
    get_therapy_week_number,
    process_user_adjustment,
    run_weekly_adjustment_job,
    trigger_adjustment_for_user,
)

__all__ = [
    'SleepMetrics',
    'calculate_sleep_metrics',
    'calculate_bedtime',
    'derive_bedtime',
    'minutes_between',
    'ComputationError',
    'DecisionKind',
    'InsufficientData',
    'PreconditionError',
    'TitrationDecision',
    'TitrationResult',
    'compute_baseline',
    'get_baseline_status',
    'record_observation',
    'compute_weekly_adjustment',
    'decide_adjustment',
    'compute_adherence',
    'compute_weekly_adherence',
    'flag_for_review',
    'get_therapy_week_number',
    'process_user_adjustment',
    'run_weekly_adjustment_job',
    'trigger_adjustment_for_user',
]
