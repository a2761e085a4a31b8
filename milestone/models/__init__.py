from .base import Base, BaseModel
from .user import User
from .standup import Standup
from .blocker import Blocker
from .attendance import Attendance
from .file import Attachment
from .notification_log import NotificationLog
from .job_run import JobRun

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "Standup",
    "Blocker",
    "Attendance",
    "Attachment",
    "NotificationLog",
    "JobRun",
]
