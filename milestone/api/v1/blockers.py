from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field

from ...database import get_db
from ...core.auth import get_clock, get_current_user, require_role
from ...models.enums import BlockerCategory, BlockerSeverity, BlockerStatus, Role
from ...models.user import User
from ...services.blocker_service import BlockerService
from ...services.task_queue import OutboundTaskQueue
from ...utils.time import Clock
from ..deps import get_task_queue
from .schemas import BlockerOut, blockers_out, envelope

router = APIRouter()


class BlockerCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., max_length=5000)
    category: BlockerCategory
    severity: BlockerSeverity
    support_required: str = Field(..., min_length=1, max_length=200)


class StatusRequest(BaseModel):
    status: BlockerStatus


class EscalateRequest(BaseModel):
    escalated_to: str = Field(..., min_length=1, max_length=200)
    escalation_notes: Optional[str] = Field(None, max_length=2000)
    escalation_deadline: Optional[datetime] = None


class ResolveRequest(BaseModel):
    resolution_notes: str


def get_blocker_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    task_queue: Optional[OutboundTaskQueue] = Depends(get_task_queue)
) -> BlockerService:
    return BlockerService(db, clock=clock, task_queue=task_queue)


@router.post("", status_code=201)
async def raise_blocker(
    request: BlockerCreateRequest,
    current_user: User = Depends(get_current_user),
    service: BlockerService = Depends(get_blocker_service)
):
    """Report a blocker; managers are alerted asynchronously"""
    blocker = await service.raise_blocker(
        current_user,
        title=request.title,
        description=request.description,
        category=request.category,
        severity=request.severity,
        support_required=request.support_required
    )
    return envelope(BlockerOut.model_validate(blocker), "Blocker raised successfully")


@router.get("/my")
async def get_my_blockers(
    status: Optional[BlockerStatus] = None,
    current_user: User = Depends(get_current_user),
    service: BlockerService = Depends(get_blocker_service)
):
    result = await service.my_blockers(current_user, status)
    return envelope({
        "blockers": blockers_out(result["blockers"]),
        "grouped": {name: blockers_out(items) for name, items in result["grouped"].items()},
        "counts": result["counts"],
    })


@router.get("/active")
async def get_active_blockers(
    severity: Optional[BlockerSeverity] = None,
    category: Optional[BlockerCategory] = None,
    department: Optional[str] = None,
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: BlockerService = Depends(get_blocker_service)
):
    result = await service.active(current_user, severity=severity, category=category, department=department)
    return envelope({"blockers": blockers_out(result["blockers"]), "counts": result["counts"]})


@router.get("/analytics/overview")
async def get_analytics(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_role(Role.ADMIN)),
    service: BlockerService = Depends(get_blocker_service)
):
    return envelope(await service.analytics(current_user, days=days))


@router.get("/{blocker_id}")
async def get_blocker(
    blocker_id: int,
    current_user: User = Depends(get_current_user),
    service: BlockerService = Depends(get_blocker_service)
):
    blocker = await service.get(blocker_id, current_user)
    return envelope(BlockerOut.model_validate(blocker))


@router.put("/{blocker_id}/status")
async def update_blocker_status(
    blocker_id: int,
    request: StatusRequest,
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: BlockerService = Depends(get_blocker_service)
):
    blocker = await service.update_status(blocker_id, current_user, request.status)
    return envelope(BlockerOut.model_validate(blocker), "Blocker status updated")


@router.put("/{blocker_id}/escalate")
async def escalate_blocker(
    blocker_id: int,
    request: EscalateRequest,
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: BlockerService = Depends(get_blocker_service)
):
    blocker = await service.escalate(
        blocker_id,
        current_user,
        escalated_to=request.escalated_to,
        escalation_notes=request.escalation_notes,
        escalation_deadline=request.escalation_deadline
    )
    return envelope(BlockerOut.model_validate(blocker), "Blocker escalated")


@router.put("/{blocker_id}/resolve")
async def resolve_blocker(
    blocker_id: int,
    request: ResolveRequest,
    current_user: User = Depends(require_role(Role.MANAGER)),
    service: BlockerService = Depends(get_blocker_service)
):
    blocker = await service.resolve(blocker_id, current_user, request.resolution_notes)
    return envelope(BlockerOut.model_validate(blocker), "Blocker resolved successfully")
