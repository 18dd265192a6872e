from dataclasses import dataclass
from datetime import datetime

from sleep_titration.titration.time_of_day import round_half_up


@dataclass(frozen=True)
class SleepMetrics:
    time_in_bed_minutes: int
    total_sleep_time_minutes: int
    sleep_efficiency_percent: float


def calculate_sleep_metrics(
        bedtime: datetime,
        out_of_bed_time: datetime,
        onset_latency_minutes: int,
        wake_after_onset_minutes: int,
) -> SleepMetrics:
    """
    Time in bed, total sleep time and sleep efficiency for one night.

    Time in bed comes from the absolute timestamps, so an out-of-bed time on
    the next calendar day needs no special casing. Degenerate input (out of
    bed before bedtime) gives 0% efficiency rather than an error; temporal
    ordering is validated by the caller.
    """
    time_in_bed = round_half_up((out_of_bed_time - bedtime).total_seconds() / 60)
    total_sleep_time = max(0, time_in_bed - onset_latency_minutes - wake_after_onset_minutes)
    efficiency = (total_sleep_time / time_in_bed) * 100 if time_in_bed > 0 else 0.0
    return SleepMetrics(
        time_in_bed_minutes=time_in_bed,
        total_sleep_time_minutes=total_sleep_time,
        sleep_efficiency_percent=efficiency,
    )
