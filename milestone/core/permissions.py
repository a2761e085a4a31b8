from typing import Union

from .exceptions import ForbiddenError
from ..models.enums import Role
from ..models.user import User

RoleLike = Union[Role, str]


def has_minimum_role(role: RoleLike, required: RoleLike) -> bool:
    """Single authorization policy: EMPLOYEE < MANAGER < ADMIN."""
    try:
        return Role(role).rank >= Role(required).rank
    except ValueError:
        return False


def ensure_role(user: User, required: RoleLike) -> None:
    """Raise FORBIDDEN unless ``user`` holds at least ``required``."""
    if not has_minimum_role(user.role, required):
        raise ForbiddenError(f"Access denied. Minimum required role: {Role(required).value}")


def is_manager(user: User) -> bool:
    return has_minimum_role(user.role, Role.MANAGER)


def ensure_owner_or_manager(user: User, owner_id: int, message: str = "Access denied") -> None:
    if owner_id != user.id and not is_manager(user):
        raise ForbiddenError(message)
