import os
import tempfile

# Keep log files out of the working tree; must be set before the package creates its loggers.
os.environ.setdefault("SLEEP_TITRATION_LOG_DIR", tempfile.mkdtemp(prefix="sleep_titration_logs_"))

from datetime import date, datetime, timedelta

import pytest

from sleep_titration.database.table_initializer import initialize_titration_tables
from sleep_titration.models.base import dispose_engines
from sleep_titration.titration.time_of_day import round_half_up
from sleep_titration.titration.titration_config import reset_titration_config
from sleep_titration.utils import time_utils
from sleep_titration.utils.logging_config import set_console_level

set_console_level("OFF")

# A Monday, so it is also the start of its week
AS_OF = date(2026, 3, 16)


@pytest.fixture(autouse=True)
def default_settings(tmp_path, monkeypatch):
    monkeypatch.setitem(time_utils.GLOBAL_CONFIG, "local_timezone", "Europe/London")
    monkeypatch.setenv("SLEEP_TITRATION_CONFIG", str(tmp_path / "no_config.yaml"))
    reset_titration_config()
    yield
    reset_titration_config()


@pytest.fixture
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("SLEEP_TITRATION_DATABASE_URI", f"sqlite:///{(tmp_path / 'titration.db').as_posix()}")
    dispose_engines()
    initialize_titration_tables()
    yield
    dispose_engines()


def make_entry(night, bed=(23, 0), time_in_bed=480, efficiency=90.0, onset_latency=15, quality=7, **overrides):
    """
    Diary entry for `night` (the morning's date) whose derived efficiency is
    `efficiency` to within rounding. Bedtimes from 12:00 on are the evening before.
    """
    bed_hour, bed_minute = bed
    bed_day = night - timedelta(days=1) if bed_hour >= 12 else night
    bedtime = datetime(bed_day.year, bed_day.month, bed_day.day, bed_hour, bed_minute)
    out_of_bed = bedtime + timedelta(minutes=time_in_bed)

    total_sleep = round_half_up(efficiency / 100 * time_in_bed)
    waso = max(0, time_in_bed - total_sleep - onset_latency)

    entry = {
        "date": night,
        "bedtime": bedtime,
        "final_wake_time": out_of_bed - timedelta(minutes=5),
        "out_of_bed_time": out_of_bed,
        "sleep_onset_latency_minutes": onset_latency,
        "wake_after_sleep_onset_minutes": waso,
        "number_of_awakenings": 1,
        "subjective_quality": quality,
    }
    entry.update(overrides)
    return entry


@pytest.fixture
def seed_nights(db):
    """Record `count` consecutive nights ending on `end` through the normal logging path."""
    from sleep_titration.titration.baseline import record_observation

    def _seed(user_id, end=AS_OF, count=7, **entry_kwargs):
        records = []
        for offset in range(count - 1, -1, -1):
            night = end - timedelta(days=offset)
            records.append(record_observation(user_id, make_entry(night, **entry_kwargs), as_of=end))
        return records

    return _seed
