from enum import Enum


class Role(str, Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]


_ROLE_RANK = {
    Role.EMPLOYEE: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


class StandupStatus(str, Enum):
    PENDING = "PENDING"
    GOAL_SET = "GOAL_SET"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"


class GoalStatus(str, Enum):
    ACHIEVED = "ACHIEVED"
    PARTIALLY_ACHIEVED = "PARTIALLY_ACHIEVED"
    NOT_ACHIEVED = "NOT_ACHIEVED"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    FEEDBACK = "feedback"
    NEEDS_ATTENTION = "needs_attention"


class BlockerCategory(str, Enum):
    TECHNICAL = "TECHNICAL"
    RESOURCE = "RESOURCE"
    COMMUNICATION = "COMMUNICATION"
    EXTERNAL = "EXTERNAL"
    OTHER = "OTHER"


class BlockerSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.value]


# CRITICAL > HIGH > MEDIUM > LOW
SEVERITY_RANK = {
    "LOW": 1,
    "MEDIUM": 2,
    "HIGH": 3,
    "CRITICAL": 4,
}


class BlockerStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    HALF_DAY = "HALF_DAY"
    LATE = "LATE"


class NotificationType(str, Enum):
    BLOCKER_ALERT = "BLOCKER_ALERT"
    SUBMISSION_NOTIFICATION = "SUBMISSION_NOTIFICATION"
    DAILY_REMINDER = "DAILY_REMINDER"
    WEEKLY_REPORT = "WEEKLY_REPORT"
    APPROVAL_NOTIFICATION = "APPROVAL_NOTIFICATION"


class JobRunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
