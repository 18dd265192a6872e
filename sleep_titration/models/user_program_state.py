"""
SQLAlchemy model for per-user program state.
"""
import enum

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Text, Enum
from sqlalchemy.sql import func
from sleep_titration.models.base import Base


class ReviewStatus(str, enum.Enum):
    """Clinician-review flag. Moves CLEAR -> FLAGGED only; clearing is an external action."""
    CLEAR = "clear"
    FLAGGED = "flagged"


class UserProgramState(Base):
    """
    One row per user.

    baseline_complete only ever goes False -> True.
    review_status is written by the safety monitor and only ever moves to FLAGGED.
    """
    __tablename__ = "user_program_state"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, unique=True)
    program_start_date = Column(Date, nullable=True)
    baseline_complete = Column(Boolean, nullable=False, default=False)
    target_wake_time = Column(String(5), nullable=True)
    review_status = Column(
        Enum(ReviewStatus, name="review_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ReviewStatus.CLEAR,
    )
    flag_reason = Column(Text, nullable=True)
    flagged_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @property
    def flagged_for_review(self):
        return self.review_status == ReviewStatus.FLAGGED

    def __repr__(self):
        return (
            f"<UserProgramState(user={self.user_id}, baseline_complete={self.baseline_complete}, "
            f"target_wake={self.target_wake_time}, review={self.review_status})>"
        )
