"""
AI assistance endpoints.

All of these degrade to deterministic defaults when the LLM is disabled or
unavailable; they never fail because of the model.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel, Field

from ...database import get_db
from ...core.auth import get_clock, get_current_user, require_role
from ...models.enums import Role
from ...models.user import User
from ...services.ai_advisor import AIAdvisor
from ...services.blocker_service import BlockerService
from ...services.standup_service import StandupService
from ...utils.time import Clock
from ..deps import get_advisor
from .schemas import envelope

router = APIRouter()


class SentimentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)


@router.post("/suggest-goals")
async def suggest_goals(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    advisor: AIAdvisor = Depends(get_advisor)
):
    """Goal ideas based on the caller's last week of standups"""
    department = current_user.department
    recent = await StandupService(db, clock=clock).recent(current_user, days=7)
    suggestions = await advisor.suggest_goals(recent, department)
    return envelope({"suggestions": suggestions})


@router.post("/analyze-standup/{standup_id}")
async def analyze_standup(
    standup_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    advisor: AIAdvisor = Depends(get_advisor)
):
    standup = await StandupService(db, clock=clock).get(standup_id, current_user)
    analysis = await advisor.analyze_standup(standup, len(standup.files))
    return envelope({"standup_id": standup_id, "analysis": analysis})


@router.post("/analyze-blocker/{blocker_id}")
async def analyze_blocker(
    blocker_id: int,
    current_user: User = Depends(require_role(Role.MANAGER)),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    advisor: AIAdvisor = Depends(get_advisor)
):
    service = BlockerService(db, clock=clock)
    blocker = await service.get(blocker_id, current_user)
    similar = await service.similar_resolved(blocker)
    analysis = await advisor.analyze_blocker(blocker, similar)
    return envelope({"blocker_id": blocker_id, "analysis": analysis})


@router.post("/analyze-sentiment")
async def analyze_sentiment(
    request: SentimentRequest,
    current_user: User = Depends(get_current_user),
    advisor: AIAdvisor = Depends(get_advisor)
):
    return envelope(await advisor.analyze_sentiment(request.text))
