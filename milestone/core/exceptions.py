from typing import Any, Dict, Optional


class AppError(Exception):
    """Base exception for errors surfaced to API clients.

    ``code`` is the stable machine-readable identifier rendered in the
    response envelope; ``status_code`` is the HTTP status.
    """

    status_code: int = 500
    code: str = "SERVER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Any] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationFailedError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class TokenExpiredError(UnauthorizedError):
    code = "TOKEN_EXPIRED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class DuplicateEntryError(AppError):
    status_code = 409
    code = "DUPLICATE_ENTRY"


# State conflicts: a transition attempted from the wrong state
class StateConflictError(AppError):
    status_code = 400
    code = "INVALID_STATUS"


class GoalAlreadySetError(StateConflictError):
    code = "GOAL_ALREADY_SET"


class NoGoalSetError(StateConflictError):
    code = "NO_GOAL_SET"


class AlreadySubmittedError(StateConflictError):
    code = "ALREADY_SUBMITTED"


class InvalidStatusError(StateConflictError):
    code = "INVALID_STATUS"


class AlreadyResolvedError(StateConflictError):
    code = "ALREADY_RESOLVED"


class StandupLockedError(StateConflictError):
    code = "STANDUP_LOCKED"


# Upload rejections
class FileRejectedError(AppError):
    status_code = 400
    code = "INVALID_FILE_TYPE"
