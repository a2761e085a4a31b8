from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect, select
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from ..config import settings
from ..database import get_db
from ..models.user import User
from ..utils.time import Clock, utc_now
from ..services.attendance_service import AttendanceService
from .exceptions import ForbiddenError, TokenExpiredError, UnauthorizedError
from .permissions import RoleLike, ensure_role


security = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def get_clock() -> Clock:
    """Clock dependency, overridden in tests to pin "now"."""
    return utc_now


def _encode(user_id: int, token_type: str, secret: str, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    # `sub` must be a string for python-jose to validate it
    to_encode = {"sub": str(user_id), "type": token_type, "exp": expire}
    return jwt.encode(to_encode, secret, algorithm=settings.algorithm)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    return _encode(
        user_id,
        ACCESS_TOKEN,
        settings.secret_key,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT refresh token, signed with its own secret"""
    return _encode(
        user_id,
        REFRESH_TOKEN,
        settings.jwt_refresh_secret,
        expires_delta or timedelta(days=settings.refresh_token_expire_days)
    )


def _decode(token: str, secret: str, token_type: str) -> int:
    try:
        payload: Dict[str, Any] = jwt.decode(token, secret, algorithms=[settings.algorithm])
    except ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except JWTError:
        raise UnauthorizedError("Invalid token")

    if payload.get("type") != token_type or payload.get("sub") is None:
        raise UnauthorizedError("Invalid token")

    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token")


def decode_access_token(token: str) -> int:
    return _decode(token, settings.secret_key, ACCESS_TOKEN)


def decode_refresh_token(token: str) -> int:
    return _decode(token, settings.jwt_refresh_secret, REFRESH_TOKEN)


async def load_active_user(db: AsyncSession, user_id: int) -> User:
    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if user is None:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise ForbiddenError("User account is deactivated", code="USER_INACTIVE")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> User:
    """Get current authenticated user from JWT token.

    The first authenticated request of the day also records the user's
    attendance login.
    """

    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("No token provided")

    user_id = decode_access_token(credentials.credentials)
    user = await load_active_user(db, user_id)

    await AttendanceService(db, clock=clock).record_login(user_id)
    if inspect(user).expired:
        # a concurrent login insert rolled the session back
        await db.refresh(user)

    return user


def require_role(required: RoleLike):
    """Dependency factory enforcing a minimum role"""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        ensure_role(current_user, required)
        return current_user

    return dependency
