from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...core.auth import get_clock, require_role
from ...models.enums import Role
from ...models.user import User
from ...services.report_service import ReportService
from ...utils.time import Clock
from .schemas import UserBrief, envelope

router = APIRouter()


def get_report_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> ReportService:
    return ReportService(db, clock=clock)


@router.get("/overview")
async def get_overview(
    current_user: User = Depends(require_role(Role.ADMIN)),
    service: ReportService = Depends(get_report_service)
):
    """Today's goals, submissions, attendance and blockers, plus 30-day totals"""
    return envelope(await service.overview())


@router.get("/department/{department}")
async def get_department_stats(
    department: str,
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: ReportService = Depends(get_report_service)
):
    stats = await service.department_stats(department, days=days)
    stats["employees"] = [UserBrief.model_validate(u) for u in stats["employees"]]
    return envelope(stats)


@router.get("/productivity-trends")
async def get_productivity_trends(
    period: str = Query("30d", pattern="^(7d|30d|90d)$"),
    current_user: User = Depends(require_role(Role.ADMIN)),
    service: ReportService = Depends(get_report_service)
):
    return envelope(await service.productivity_trends(period))
