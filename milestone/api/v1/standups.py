"""
Standup API Endpoints

Morning goal, end-of-day submission and manager review of daily standups
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date as Date

from pydantic import BaseModel, Field

from ...database import get_db
from ...core.auth import get_clock, get_current_user, require_role
from ...models.enums import GoalStatus, ReviewAction, Role
from ...models.user import User
from ...services.standup_service import StandupService
from ...services.task_queue import OutboundTaskQueue
from ...utils.time import Clock
from ..deps import get_task_queue
from .schemas import StandupBrief, StandupOut, UserBrief, envelope, standups_out

router = APIRouter()


class GoalRequest(BaseModel):
    """Morning goal; without ``standup_id`` a new standup is created"""
    today_goal: str = Field(..., description="What you plan to achieve today")
    standup_id: Optional[int] = None
    task_refs: List[str] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    standup_id: int
    achievement_title: str = Field(..., min_length=1, max_length=100)
    achievement_desc: str = Field(..., min_length=100, max_length=5000)
    goal_status: GoalStatus
    completion_percentage: Optional[int] = Field(None, ge=0, le=100)
    not_achieved_reason: Optional[str] = Field(None, max_length=2000)


class ReviewRequest(BaseModel):
    action: ReviewAction
    feedback: Optional[str] = Field(None, max_length=2000)


def get_standup_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    task_queue: Optional[OutboundTaskQueue] = Depends(get_task_queue)
) -> StandupService:
    return StandupService(db, clock=clock, task_queue=task_queue)


@router.post("", status_code=201)
async def create_standup(
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    """Start the next standup of the day"""
    standup = await service.create(current_user)
    return envelope(StandupOut.model_validate(standup), "Standup created")


@router.post("/goal")
async def set_goal(
    request: GoalRequest,
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    standup = await service.set_goal(
        current_user,
        request.today_goal,
        standup_id=request.standup_id,
        task_refs=request.task_refs
    )
    return envelope(StandupOut.model_validate(standup), "Goal set successfully")


@router.post("/submit")
async def submit_achievement(
    request: SubmitRequest,
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    standup = await service.submit(
        current_user,
        request.standup_id,
        achievement_title=request.achievement_title,
        achievement_desc=request.achievement_desc,
        goal_status=request.goal_status,
        completion_percentage=request.completion_percentage,
        not_achieved_reason=request.not_achieved_reason
    )
    message = "Achievement submitted successfully"
    if standup.is_late_submission:
        message += " (late submission)"
    return envelope(StandupOut.model_validate(standup), message)


@router.get("/today")
async def get_today(
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    """Today's standups for the caller, in sequence order"""
    standups = await service.list_today(current_user)
    return envelope({"standups": standups_out(standups), "count": len(standups)})


@router.get("/history")
async def get_history(
    user_id: Optional[int] = None,
    start_date: Optional[Date] = None,
    end_date: Optional[Date] = None,
    limit: int = Query(30, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    standups, total = await service.history(
        current_user,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset
    )
    return envelope({
        "standups": standups_out(standups),
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(standups) < total,
        },
    })


@router.get("/pending-reviews")
async def get_pending_reviews(
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: StandupService = Depends(get_standup_service)
):
    standups = await service.pending_reviews(current_user)
    return envelope({"standups": standups_out(standups), "count": len(standups)})


@router.get("/team-overview")
async def get_team_overview(
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: StandupService = Depends(get_standup_service)
):
    result = await service.team_overview(current_user)
    overview = [
        {
            "user": UserBrief.model_validate(row["user"]),
            "standup": StandupBrief.model_validate(row["standup"]) if row["standup"] else None,
            "standup_count": row["standup_count"],
            "status": row["status"],
        }
        for row in result["overview"]
    ]
    return envelope({"overview": overview, "stats": result["stats"]})


@router.put("/{standup_id}/review")
async def review_standup(
    standup_id: int,
    request: ReviewRequest,
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: StandupService = Depends(get_standup_service)
):
    standup = await service.review(standup_id, current_user, request.action, request.feedback)
    return envelope(StandupOut.model_validate(standup), "Review saved")


@router.get("/{standup_id}")
async def get_standup(
    standup_id: int,
    current_user: User = Depends(get_current_user),
    service: StandupService = Depends(get_standup_service)
):
    standup = await service.get(standup_id, current_user)
    return envelope(StandupOut.model_validate(standup))
