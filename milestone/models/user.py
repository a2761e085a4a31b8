from sqlalchemy import Column, String, Boolean
from sqlalchemy.orm import relationship
from .base import BaseModel
from .enums import Role


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.EMPLOYEE.value, index=True)  # EMPLOYEE, MANAGER, ADMIN
    department = Column(String, nullable=False, index=True)
    avatar = Column(String, nullable=True)

    # Soft deactivation only, users are never deleted
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    standups = relationship("Standup", back_populates="user", foreign_keys="Standup.user_id")
    blockers = relationship("Blocker", back_populates="user", foreign_keys="Blocker.user_id")
    attendance = relationship("Attendance", back_populates="user")

    @property
    def role_enum(self) -> Role:
        return Role(self.role)
