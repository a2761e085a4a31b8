from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import BlockerStatus


class Blocker(BaseModel):
    __tablename__ = "blockers"
    __table_args__ = (
        Index("ix_blockers_user_status", "user_id", "status"),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    standup_id = Column(Integer, ForeignKey("standups.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)  # TECHNICAL, RESOURCE, COMMUNICATION, EXTERNAL, OTHER
    severity = Column(String, nullable=False, index=True)  # LOW, MEDIUM, HIGH, CRITICAL
    support_required = Column(String(200), nullable=False)
    status = Column(String, nullable=False, default=BlockerStatus.OPEN.value, index=True)

    # Escalation
    escalated_to = Column(String, nullable=True)
    escalation_notes = Column(Text, nullable=True)
    escalation_deadline = Column(DateTime(timezone=True), nullable=True)

    # Resolution
    resolution_notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # AI analysis
    ai_analysis = Column(JSON, nullable=True)

    # Relationships
    user = relationship("User", back_populates="blockers", foreign_keys=[user_id])
    resolver = relationship("User", foreign_keys=[resolved_by])
    standup = relationship("Standup", back_populates="blockers")
    files = relationship("Attachment", back_populates="blocker", cascade="all, delete-orphan")
