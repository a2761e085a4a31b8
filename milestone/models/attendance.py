from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import AttendanceStatus


class Attendance(BaseModel):
    __tablename__ = "attendance"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_attendance_user_date"),
    )

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    login_time = Column(DateTime(timezone=True), nullable=True)
    logout_time = Column(DateTime(timezone=True), nullable=True)
    hours_worked = Column(Float, nullable=True)
    status = Column(String, nullable=False, default=AttendanceStatus.ABSENT.value)  # PRESENT, ABSENT, HALF_DAY, LATE

    user = relationship("User", back_populates="attendance")
