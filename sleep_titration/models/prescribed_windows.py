# prescribed_windows.py
"""
SQLAlchemy model for prescribed_windows table.

A prescribed window is the sleep schedule a user follows for one calendar
week. Rows are written once by the titration engine and never updated.

Columns:
    user_id / week_start_date: unique together, one window per user per week
    prescribed_bedtime / prescribed_wake_time: 'HH:MM' wall-clock strings.
        A bedtime later than the wake time means the night before.
    time_in_bed_minutes: allowed time in bed, always within [300, 540]
    avg_sleep_efficiency_percent: efficiency that produced the decision
    decision_kind: 'Baseline', 'Increase', 'Decrease', 'Maintain'
    adjustment_minutes: change vs. the preceding window (0 for Baseline/Maintain)
    feedback_message: text from the message collaborator, if any
"""
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, Text, Index,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sleep_titration.models.base import Base


class PrescribedWindow(Base):
    __tablename__ = 'prescribed_windows'

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    week_start_date = Column(Date, nullable=False)
    prescribed_bedtime = Column(String(5), nullable=False)
    prescribed_wake_time = Column(String(5), nullable=False)
    time_in_bed_minutes = Column(Integer, nullable=False)
    avg_sleep_efficiency_percent = Column(Float, nullable=True)
    decision_kind = Column(String(16), nullable=False)
    adjustment_minutes = Column(Integer, nullable=False, default=0)
    feedback_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'week_start_date', name='uq_prescribed_window_user_week'),
        CheckConstraint('time_in_bed_minutes BETWEEN 300 AND 540', name='ck_window_tib_bounds'),
        CheckConstraint('adjustment_minutes >= 0', name='ck_window_adjustment_non_negative'),
        Index('idx_window_user_week', 'user_id', 'week_start_date'),
    )

    def __repr__(self):
        return (
            f"<PrescribedWindow(id={self.id}, user={self.user_id}, week={self.week_start_date}, "
            f"{self.prescribed_bedtime}-{self.prescribed_wake_time}, tib={self.time_in_bed_minutes}, "
            f"decision={self.decision_kind})>"
        )
