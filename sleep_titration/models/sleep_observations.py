"""
SQLAlchemy model for nightly sleep observations (sleep diary entries).
"""
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Text, Index,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sleep_titration.models.base import Base


class SleepObservation(Base):
    """
    One observation per user per calendar night.

    bedtime / final_wake_time / out_of_bed_time are naive local wall-clock
    datetimes; out_of_bed_time is usually on the calendar day after bedtime.

    time_in_bed_minutes, total_sleep_time_minutes and sleep_efficiency_percent
    are derived when the row is created or corrected and are never set on
    their own.
    """
    __tablename__ = "sleep_observations"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)

    bedtime = Column(DateTime, nullable=False)
    final_wake_time = Column(DateTime, nullable=False)
    out_of_bed_time = Column(DateTime, nullable=False)

    sleep_onset_latency_minutes = Column(Integer, nullable=False, default=0)
    wake_after_sleep_onset_minutes = Column(Integer, nullable=False, default=0)
    number_of_awakenings = Column(Integer, nullable=False, default=0)
    subjective_quality = Column(Integer, nullable=False)

    time_in_bed_minutes = Column(Integer, nullable=False)
    total_sleep_time_minutes = Column(Integer, nullable=False)
    sleep_efficiency_percent = Column(Float, nullable=False)

    source = Column(String(20), nullable=False, default='manual')  # 'manual', 'device', 'hybrid'
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    corrected_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_sleep_observation_user_date'),
        CheckConstraint('sleep_onset_latency_minutes BETWEEN 0 AND 600', name='ck_observation_sol_range'),
        CheckConstraint('wake_after_sleep_onset_minutes BETWEEN 0 AND 600', name='ck_observation_waso_range'),
        CheckConstraint('subjective_quality BETWEEN 1 AND 10', name='ck_observation_quality_range'),
        Index('idx_observation_user_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return (
            f"<SleepObservation(id={self.id}, user={self.user_id}, date={self.date}, "
            f"tib={self.time_in_bed_minutes}min, se={self.sleep_efficiency_percent:.1f}%)>"
        )
