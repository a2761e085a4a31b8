from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from pydantic import BaseModel, Field

from ...database import get_db
from ...core.auth import require_role
from ...models.enums import Role
from ...models.user import User
from ...services.user_service import UserService
from .schemas import UserOut, envelope, users_out

router = APIRouter()

admin_only = require_role(Role.ADMIN)


class UserCreateRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=2, max_length=100)
    role: Role = Role.EMPLOYEE
    department: str = Field(..., min_length=1, max_length=100)


class UserUpdateRequest(BaseModel):
    email: Optional[str] = Field(None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: Optional[str] = Field(None, min_length=8)
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    role: Optional[Role] = None
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("")
async def list_users(
    role: Optional[Role] = None,
    department: Optional[str] = None,
    is_active: Optional[bool] = None,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    users = await service.list_users(current_user, role=role, department=department, is_active=is_active)
    return envelope({"users": users_out(users), "count": len(users)})


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    return envelope(UserOut.model_validate(await service.get(user_id)))


@router.post("", status_code=201)
async def create_user(
    request: UserCreateRequest,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    user = await service.create(
        current_user,
        email=request.email,
        password=request.password,
        name=request.name,
        role=request.role,
        department=request.department
    )
    return envelope(UserOut.model_validate(user), "User created successfully")


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    request: UserUpdateRequest,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    user = await service.update(current_user, user_id, request.model_dump(exclude_unset=True))
    return envelope(UserOut.model_validate(user), "User updated successfully")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    """Soft delete: the account is deactivated, its history kept"""
    user = await service.deactivate(current_user, user_id)
    return envelope(UserOut.model_validate(user), "User deactivated successfully")


@router.post("/{user_id}/reactivate")
async def reactivate_user(
    user_id: int,
    current_user: User = Depends(admin_only),
    service: UserService = Depends(get_user_service)
):
    user = await service.reactivate(current_user, user_id)
    return envelope(UserOut.model_validate(user), "User reactivated successfully")
