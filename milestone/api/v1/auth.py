from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field, field_validator

from ...database import get_db
from ...core.auth import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_clock,
    get_current_user,
    load_active_user,
)
from ...core.exceptions import UnauthorizedError
from ...models.user import User
from ...services.attendance_service import AttendanceService
from ...services.user_service import UserService
from ...utils.time import Clock
from .schemas import AttendanceOut, UserOut, envelope

router = APIRouter()


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def strong_enough(cls, value: str) -> str:
        if not (any(c.isupper() for c in value) and any(c.islower() for c in value) and any(c.isdigit() for c in value)):
            raise ValueError("Password must contain uppercase, lowercase and a number")
        return value


def _tokens(user_id: int) -> dict:
    return {
        "access_token": create_access_token(user_id),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Exchange credentials for tokens and record today's login"""

    user = await UserService(db).authenticate(request.email, request.password)
    user_id = user.id
    user_out = UserOut.model_validate(user)

    await AttendanceService(db, clock=clock).record_login(user_id)

    return envelope({"user": user_out, **_tokens(user_id)}, "Login successful")


@router.post("/refresh")
async def refresh(request: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        user_id = decode_refresh_token(request.refresh_token)
    except UnauthorizedError:
        raise UnauthorizedError("Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN")

    await load_active_user(db, user_id)
    return envelope(_tokens(user_id))


@router.get("/me")
async def me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    service = AttendanceService(db, clock=clock)
    attendance = await service.get_for_day(current_user.id, service.today())
    return envelope({
        "user": UserOut.model_validate(current_user),
        "attendance": AttendanceOut.model_validate(attendance) if attendance else None,
    })


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
):
    """Stamp logout time; a logout already recorded by a submission is kept"""

    attendance = await AttendanceService(db, clock=clock).record_logout(current_user.id, overwrite=False)
    return envelope(
        {"attendance": AttendanceOut.model_validate(attendance) if attendance else None},
        "Logged out successfully"
    )


@router.put("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await UserService(db).change_password(current_user, request.current_password, request.new_password)
    return envelope(message="Password changed successfully")
