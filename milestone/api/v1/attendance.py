from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import date as Date

from ...database import get_db
from ...core.auth import get_clock, get_current_user, require_role
from ...core.exceptions import ValidationFailedError
from ...models.enums import Role
from ...models.user import User
from ...services.attendance_service import AttendanceService
from ...services.user_service import UserService
from ...utils.time import Clock
from .schemas import AttendanceOut, UserBrief, attendance_out, envelope

router = APIRouter()


def get_attendance_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> AttendanceService:
    return AttendanceService(db, clock=clock)


def _month_or_current(service: AttendanceService, month: Optional[int], year: Optional[int]):
    today = service.today()
    return month or today.month, year or today.year


@router.get("/today")
async def get_today(
    current_user: User = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service)
):
    attendance = await service.get_for_day(current_user.id, service.today())
    return envelope({"attendance": AttendanceOut.model_validate(attendance) if attendance else None})


@router.get("/month")
async def get_month(
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: User = Depends(get_current_user),
    service: AttendanceService = Depends(get_attendance_service)
):
    month, year = _month_or_current(service, month, year)
    records, stats = await service.get_month(current_user.id, month, year)
    return envelope({"records": attendance_out(records), "stats": stats, "month": month, "year": year})


@router.get("/user/{user_id}")
async def get_user_month(
    user_id: int,
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    current_user: User = Depends(require_role(Role.MANAGER)),
    db: AsyncSession = Depends(get_db),
    service: AttendanceService = Depends(get_attendance_service)
):
    user = await UserService(db).get(user_id)
    month, year = _month_or_current(service, month, year)
    records, stats = await service.get_month(user_id, month, year)
    return envelope({
        "user": UserBrief.model_validate(user),
        "records": attendance_out(records),
        "stats": stats,
        "month": month,
        "year": year,
    })


@router.get("/report")
async def get_report(
    start_date: Optional[Date] = None,
    end_date: Optional[Date] = None,
    department: Optional[str] = None,
    current_user: User = Depends(require_role(Role.ADMIN)),
    service: AttendanceService = Depends(get_attendance_service)
):
    """Attendance per employee and per department, last 30 days by default"""

    default_start, default_end = service.default_report_window()
    start = start_date or default_start
    end = end_date or default_end
    if start > end:
        raise ValidationFailedError("start_date must not be after end_date")

    result = await service.report(start, end, department=department)
    result["report"] = [
        {"user": UserBrief.model_validate(row["user"]), "stats": row["stats"]}
        for row in result["report"]
    ]
    return envelope(result)


@router.get("/team-today")
async def get_team_today(
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: AttendanceService = Depends(get_attendance_service)
):
    result = await service.team_today()
    result["team_status"] = [
        {
            "user": UserBrief.model_validate(row["user"]),
            "attendance": AttendanceOut.model_validate(row["attendance"]) if row["attendance"] else None,
            "is_logged_in": row["is_logged_in"],
            "has_submitted": row["has_submitted"],
        }
        for row in result["team_status"]
    ]
    return envelope(result)
