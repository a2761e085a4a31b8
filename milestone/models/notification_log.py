from sqlalchemy import Column, String, Text, JSON
from .base import BaseModel


class NotificationLog(BaseModel):
    """Append-only record of every outbound notification attempt"""
    __tablename__ = "notification_logs"

    type = Column(String, nullable=False, index=True)  # see NotificationType
    recipient = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String, nullable=False)  # sent, failed
    error = Column(Text, nullable=True)
