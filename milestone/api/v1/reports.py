from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...core.auth import get_clock, require_role
from ...models.enums import Role
from ...models.user import User
from ...services.ai_advisor import AIAdvisor
from ...services.report_service import ReportService
from ...utils.time import Clock
from ..deps import get_advisor
from .schemas import envelope

router = APIRouter()


@router.get("/weekly")
async def get_weekly_report(
    current_user: User = Depends(require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    advisor: AIAdvisor = Depends(get_advisor)
):
    """Same aggregation and summary the scheduled weekly job sends"""
    return envelope(await ReportService(db, clock=clock).weekly_report(advisor))
