from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime, ForeignKey, JSON, Boolean,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import StandupStatus


class Standup(BaseModel):
    """One goal/achievement cycle for a user on a calendar day.

    Several standups per user per day are allowed; ``sequence`` numbers them
    1..n in creation order.
    """
    __tablename__ = "standups"
    __table_args__ = (
        UniqueConstraint("user_id", "date", "sequence", name="uq_standups_user_date_sequence"),
        Index("ix_standups_user_date", "user_id", "date"),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    sequence = Column(Integer, nullable=False, default=1)

    # Morning goal
    today_goal = Column(Text, nullable=True)
    goal_set_time = Column(DateTime(timezone=True), nullable=True)
    task_refs = Column(JSON, default=list)  # external task ids linked to the goal

    # End-of-day submission
    achievement_title = Column(String(100), nullable=True)
    achievement_desc = Column(Text, nullable=True)
    goal_status = Column(String, nullable=True)  # ACHIEVED, PARTIALLY_ACHIEVED, NOT_ACHIEVED
    completion_percentage = Column(Integer, nullable=True)
    not_achieved_reason = Column(Text, nullable=True)
    submission_time = Column(DateTime(timezone=True), nullable=True)
    is_late_submission = Column(Boolean, default=False, nullable=False)

    # Workflow
    status = Column(String, nullable=False, default=StandupStatus.PENDING.value, index=True)

    # Review
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    manager_feedback = Column(Text, nullable=True)

    # AI analysis
    ai_insights = Column(JSON, nullable=True)

    # Relationships
    user = relationship("User", back_populates="standups", foreign_keys=[user_id])
    reviewer = relationship("User", foreign_keys=[reviewed_by])
    files = relationship("Attachment", back_populates="standup", cascade="all, delete-orphan")
    blockers = relationship("Blocker", back_populates="standup")
