"""
Response models shared by the v1 routers.

Every endpoint answers with the envelope
``{"success": true, "data": ..., "message": ...}``; errors are rendered by
the exception handlers in ``main.py``.
"""
from pydantic import BaseModel, field_validator
from typing import Any, Dict, List, Optional
from datetime import date as Date, datetime

from ...models.enums import BlockerStatus


def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body


class UserOut(BaseModel):
    id: int
    email: str
    name: str
    role: str
    department: str
    avatar: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserBrief(BaseModel):
    id: int
    name: str
    email: str
    department: str

    class Config:
        from_attributes = True


class FileOut(BaseModel):
    id: int
    filename: str
    original_name: str
    filesize: int
    mimetype: str
    standup_id: Optional[int] = None
    blocker_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BlockerBrief(BaseModel):
    id: int
    title: str
    severity: str
    status: str
    category: str

    class Config:
        from_attributes = True


class StandupBrief(BaseModel):
    """Standup without relationships"""
    id: int
    user_id: int
    date: Date
    sequence: int
    today_goal: Optional[str] = None
    goal_set_time: Optional[datetime] = None
    achievement_title: Optional[str] = None
    goal_status: Optional[str] = None
    completion_percentage: Optional[int] = None
    submission_time: Optional[datetime] = None
    is_late_submission: bool = False
    status: str

    class Config:
        from_attributes = True


class StandupOut(StandupBrief):
    task_refs: Optional[List[Any]] = None
    achievement_desc: Optional[str] = None
    not_achieved_reason: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    manager_feedback: Optional[str] = None
    ai_insights: Optional[Dict[str, Any]] = None
    user: Optional[UserBrief] = None
    files: List[FileOut] = []
    blockers: List[BlockerBrief] = []

    @field_validator("blockers", mode="before")
    @classmethod
    def unresolved_only(cls, value):
        return [b for b in (value or []) if getattr(b, "status", None) != BlockerStatus.RESOLVED.value]


class BlockerOut(BaseModel):
    id: int
    user_id: int
    standup_id: Optional[int] = None
    title: str
    description: str
    category: str
    severity: str
    support_required: str
    status: str
    escalated_to: Optional[str] = None
    escalation_notes: Optional[str] = None
    escalation_deadline: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[int] = None
    ai_analysis: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    user: Optional[UserBrief] = None
    files: List[FileOut] = []

    class Config:
        from_attributes = True


class AttendanceOut(BaseModel):
    id: int
    user_id: int
    date: Date
    login_time: Optional[datetime] = None
    logout_time: Optional[datetime] = None
    hours_worked: Optional[float] = None
    status: str

    class Config:
        from_attributes = True


def users_out(users) -> List[UserOut]:
    return [UserOut.model_validate(u) for u in users]


def standups_out(standups) -> List[StandupOut]:
    return [StandupOut.model_validate(s) for s in standups]


def blockers_out(blockers) -> List[BlockerOut]:
    return [BlockerOut.model_validate(b) for b in blockers]


def attendance_out(records) -> List[AttendanceOut]:
    return [AttendanceOut.model_validate(r) for r in records]
