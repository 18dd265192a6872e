import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from sleep_titration.utils.time_utils import to_utc


class ObservationInput(BaseModel):
    """
    One night as entered by the user or delivered by the device importer.

    Timestamps are kept as given, aware or naive (naive means local wall
    clock). Durations and ordering use their absolute instants; conversion to
    wall-clock time happens only when the row is stored.
    """

    date: dt.date                                           # night key (the morning's date)
    bedtime: dt.datetime
    final_wake_time: dt.datetime
    out_of_bed_time: dt.datetime
    sleep_onset_latency_minutes: int = Field(ge=0, le=600)
    wake_after_sleep_onset_minutes: int = Field(ge=0, le=600)
    number_of_awakenings: int = Field(default=0, ge=0, le=50)
    subjective_quality: int = Field(ge=1, le=10)
    source: Literal["manual", "device", "hybrid"] = "manual"
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_ordering(self):
        if to_utc(self.out_of_bed_time) <= to_utc(self.bedtime):
            raise ValueError("Out of bed time must be after bedtime")
        return self
