"""
Typed outcomes of the titration engine.

Engine operations return one of these instead of raising, so the weekly batch
can branch on the outcome without try/except around every user:

- TitrationDecision: a new window was computed
- InsufficientData:  fewer than the minimum observations; wait and retry
- PreconditionError: upstream state is missing (target wake time, baseline)
- ComputationError:  something unexpected failed; logged and reported
"""

import enum
from dataclasses import dataclass
from typing import Optional, Union


class DecisionKind(str, enum.Enum):
    BASELINE = "Baseline"
    INCREASE = "Increase"
    DECREASE = "Decrease"
    MAINTAIN = "Maintain"


@dataclass(frozen=True)
class TitrationDecision:
    decision_kind: DecisionKind
    avg_sleep_efficiency_percent: float
    new_time_in_bed_minutes: int
    prescribed_bedtime: str
    prescribed_wake_time: str
    entries_used: int
    # None for Baseline: there is no preceding window to compare against
    previous_time_in_bed_minutes: Optional[int] = None
    flagged: bool = False
    flag_reason: Optional[str] = None

    @property
    def adjustment_minutes(self) -> int:
        if self.previous_time_in_bed_minutes is None:
            return 0
        return abs(self.new_time_in_bed_minutes - self.previous_time_in_bed_minutes)


@dataclass(frozen=True)
class InsufficientData:
    entries_needed: int
    entries_found: int


@dataclass(frozen=True)
class PreconditionError:
    reason: str


@dataclass(frozen=True)
class ComputationError:
    reason: str


TitrationResult = Union[TitrationDecision, InsufficientData, PreconditionError, ComputationError]


def describe_result(result: TitrationResult) -> str:
    """One-line summary used in logs and batch reports."""
    if isinstance(result, TitrationDecision):
        return (
            f"{result.decision_kind.value}: TIB {result.new_time_in_bed_minutes}min "
            f"({result.prescribed_bedtime}-{result.prescribed_wake_time}), "
            f"SE {result.avg_sleep_efficiency_percent:.1f}%"
        )
    if isinstance(result, InsufficientData):
        return f"Insufficient data - need {result.entries_needed} more entries"
    if isinstance(result, PreconditionError):
        return f"Precondition failed: {result.reason}"
    return f"Computation error: {result.reason}"
