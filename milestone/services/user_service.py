from typing import List, Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..models.user import User
from ..models.enums import Role
from ..core.auth import hash_password, verify_password
from ..core.exceptions import (
    DuplicateEntryError,
    ForbiddenError,
    NotFoundError,
    StateConflictError,
    UnauthorizedError,
    ValidationFailedError,
)
from ..core.permissions import ensure_role
from ..utils.logging import get_logger

logger = get_logger(__name__)


class UserService:
    """Accounts and credentials; users are deactivated, never deleted"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise UnauthorizedError("Invalid email or password", code="AUTH_FAILED")
        if not user.is_active:
            raise ForbiddenError("Your account has been deactivated", code="USER_INACTIVE")
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ValidationFailedError("Current password is incorrect", code="INVALID_PASSWORD")
        user.password_hash = hash_password(new_password)
        await self.db.commit()
        logger.info(f"Password changed for user {user.id}")

    # ------------------------------------------------------------------ admin management

    async def list_users(
        self,
        admin: User,
        role: Optional[Role] = None,
        department: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> List[User]:
        ensure_role(admin, Role.ADMIN)
        stmt = select(User)
        if role is not None:
            stmt = stmt.where(User.role == Role(role).value)
        if department:
            stmt = stmt.where(User.department == department)
        if is_active is not None:
            stmt = stmt.where(User.is_active.is_(is_active))
        stmt = stmt.order_by(User.role.asc(), User.name.asc())
        return list((await self.db.execute(stmt)).scalars().all())

    async def get(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create(
        self,
        admin: User,
        email: str,
        password: str,
        name: str,
        role: Role,
        department: str
    ) -> User:
        ensure_role(admin, Role.ADMIN)
        email = email.lower()
        if await self.get_by_email(email) is not None:
            raise DuplicateEntryError("A user with this email already exists", code="DUPLICATE_EMAIL")

        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name,
            role=Role(role).value,
            department=department,
            is_active=True
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEntryError("A user with this email already exists", code="DUPLICATE_EMAIL")

        logger.info(f"User {user.id} created with role {user.role}")
        return user

    async def update(self, admin: User, user_id: int, changes: Dict[str, Any]) -> User:
        ensure_role(admin, Role.ADMIN)
        user = await self.get(user_id)

        email = changes.get("email")
        if email and email.lower() != user.email:
            existing = await self.get_by_email(email)
            if existing is not None:
                raise DuplicateEntryError("A user with this email already exists", code="DUPLICATE_EMAIL")
            user.email = email.lower()

        for field in ("name", "department"):
            if changes.get(field):
                setattr(user, field, changes[field])
        if changes.get("role"):
            user.role = Role(changes["role"]).value
        if changes.get("is_active") is not None:
            if not changes["is_active"] and user.id == admin.id:
                raise StateConflictError("You cannot deactivate your own account", code="SELF_DELETE")
            user.is_active = changes["is_active"]
        if changes.get("password"):
            user.password_hash = hash_password(changes["password"])

        await self.db.commit()
        logger.info(f"User {user.id} updated")
        return user

    async def deactivate(self, admin: User, user_id: int) -> User:
        ensure_role(admin, Role.ADMIN)
        if user_id == admin.id:
            raise StateConflictError("You cannot deactivate your own account", code="SELF_DELETE")

        user = await self.get(user_id)
        user.is_active = False
        await self.db.commit()
        logger.info(f"User {user_id} deactivated")
        return user

    async def reactivate(self, admin: User, user_id: int) -> User:
        ensure_role(admin, Role.ADMIN)
        user = await self.get(user_id)
        if user.is_active:
            raise StateConflictError("User is already active", code="ALREADY_ACTIVE")

        user.is_active = True
        await self.db.commit()
        logger.info(f"User {user_id} reactivated")
        return user
