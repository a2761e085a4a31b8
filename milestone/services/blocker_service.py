from typing import List, Optional, Dict, Any, Sequence
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import case, select, update
from sqlalchemy.orm import selectinload

from ..models.blocker import Blocker
from ..models.standup import Standup
from ..models.user import User
from ..models.enums import (
    BlockerCategory,
    BlockerSeverity,
    BlockerStatus,
    Role,
    SEVERITY_RANK,
)
from ..core.exceptions import (
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStatusError,
    NotFoundError,
    ValidationFailedError,
)
from ..core.permissions import ensure_role, is_manager
from ..utils.logging import get_logger
from ..utils.time import Clock, utc_now, local_date, as_utc
from .task_queue import OutboundTaskQueue
from . import tasks

logger = get_logger(__name__)

DESCRIPTION_MIN_LENGTH = 100
RESOLUTION_MIN_LENGTH = 20
RESOLUTION_MAX_LENGTH = 2000

ACTIVE_STATES = (BlockerStatus.OPEN, BlockerStatus.IN_PROGRESS, BlockerStatus.ESCALATED)
MANUAL_STATES = (BlockerStatus.OPEN, BlockerStatus.IN_PROGRESS)

# CRITICAL first
severity_rank = case(SEVERITY_RANK, value=Blocker.severity, else_=0)


def _values(states: Sequence[BlockerStatus]) -> List[str]:
    return [s.value for s in states]


class BlockerService:
    """Blocker lifecycle: raise, status, escalate, resolve.

    RESOLVED is terminal. Transitions are conditional updates restricted to
    the active states, so a concurrent resolve cannot be overwritten.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utc_now,
        task_queue: Optional[OutboundTaskQueue] = None
    ):
        self.db = db
        self.clock = clock
        self.task_queue = task_queue

    def _enqueue(self, name: str, fn, *args) -> None:
        if self.task_queue is None:
            logger.debug(f"No task queue attached, dropping {name}")
            return
        self.task_queue.enqueue(name, fn, *args)

    def _select(self):
        return select(Blocker).options(
            selectinload(Blocker.user),
            selectinload(Blocker.files),
            selectinload(Blocker.standup)
        ).execution_options(populate_existing=True)

    async def _load(self, blocker_id: int) -> Optional[Blocker]:
        stmt = self._select().where(Blocker.id == blocker_id)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _require(self, blocker_id: int) -> Blocker:
        blocker = await self._load(blocker_id)
        if blocker is None:
            raise NotFoundError("Blocker not found")
        return blocker

    async def _transition(self, blocker_id: int, values: Dict[str, Any]) -> bool:
        stmt = (
            update(Blocker)
            .where(Blocker.id == blocker_id, Blocker.status.in_(_values(ACTIVE_STATES)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def _conflict(self, resolving: bool = False) -> Exception:
        """Build the error for a transition that matched no active row"""
        await self.db.rollback()
        if resolving:
            return AlreadyResolvedError("This blocker is already resolved.")
        return InvalidStatusError("Cannot change a resolved blocker.")

    # ------------------------------------------------------------------ lifecycle

    async def raise_blocker(
        self,
        user: User,
        title: str,
        description: str,
        category: BlockerCategory,
        severity: BlockerSeverity,
        support_required: str
    ) -> Blocker:
        """Raise a blocker, linking it to the caller's latest standup of today"""

        user_id = user.id
        if len((description or "").strip()) < DESCRIPTION_MIN_LENGTH:
            raise ValidationFailedError(
                f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters",
                details=[{"field": "description", "message": "too short"}]
            )

        today = local_date(self.clock())
        standup_id = (await self.db.execute(
            select(Standup.id)
            .where(Standup.user_id == user_id, Standup.date == today)
            .order_by(Standup.sequence.desc())
            .limit(1)
        )).scalar_one_or_none()

        blocker = Blocker(
            user_id=user_id,
            standup_id=standup_id,
            title=title,
            description=description,
            category=BlockerCategory(category).value,
            severity=BlockerSeverity(severity).value,
            support_required=support_required,
            status=BlockerStatus.OPEN.value,
            created_at=self.clock()
        )
        self.db.add(blocker)
        await self.db.commit()
        blocker_id = blocker.id

        logger.info(f"Blocker {blocker_id} raised by user {user_id} ({blocker.severity})")

        self._enqueue(f"analyze_blocker:{blocker_id}", tasks.analyze_blocker, blocker_id)
        self._enqueue(f"notify_blocker_raised:{blocker_id}", tasks.notify_blocker_raised, blocker_id)
        if blocker.severity == BlockerSeverity.CRITICAL.value:
            self._enqueue(f"notify_blocker_admin:{blocker_id}", tasks.notify_blocker_admin, blocker_id)

        return await self._load(blocker_id)

    async def update_status(self, blocker_id: int, actor: User, status: BlockerStatus) -> Blocker:
        """Move an unresolved blocker to OPEN or IN_PROGRESS (manager+)"""

        ensure_role(actor, Role.MANAGER)
        status = BlockerStatus(status)
        if status not in MANUAL_STATES:
            raise ValidationFailedError("Status must be OPEN or IN_PROGRESS")

        blocker = await self._require(blocker_id)
        if blocker.status == BlockerStatus.RESOLVED.value:
            raise InvalidStatusError("Cannot change status of a resolved blocker.")

        if not await self._transition(blocker_id, {"status": status.value}):
            raise await self._conflict()

        await self.db.commit()
        logger.info(f"Blocker {blocker_id} marked {status.value}")
        return await self._load(blocker_id)

    async def escalate(
        self,
        blocker_id: int,
        actor: User,
        escalated_to: str,
        escalation_notes: Optional[str] = None,
        escalation_deadline: Optional[datetime] = None
    ) -> Blocker:
        ensure_role(actor, Role.MANAGER)
        if not (escalated_to or "").strip():
            raise ValidationFailedError("Escalation target is required")

        blocker = await self._require(blocker_id)
        if blocker.status == BlockerStatus.RESOLVED.value:
            raise InvalidStatusError("Cannot escalate a resolved blocker.")

        applied = await self._transition(blocker_id, {
            "status": BlockerStatus.ESCALATED.value,
            "escalated_to": escalated_to.strip(),
            "escalation_notes": escalation_notes,
            "escalation_deadline": escalation_deadline,
        })
        if not applied:
            raise await self._conflict()

        await self.db.commit()
        logger.info(f"Blocker {blocker_id} escalated to {escalated_to}")

        self._enqueue(f"notify_blocker_escalated:{blocker_id}", tasks.notify_blocker_escalated, blocker_id)
        return await self._load(blocker_id)

    async def resolve(self, blocker_id: int, actor: User, resolution_notes: str) -> Blocker:
        ensure_role(actor, Role.MANAGER)
        actor_id = actor.id

        notes = (resolution_notes or "").strip()
        if not RESOLUTION_MIN_LENGTH <= len(notes) <= RESOLUTION_MAX_LENGTH:
            raise ValidationFailedError(
                f"Resolution notes must be between {RESOLUTION_MIN_LENGTH} and {RESOLUTION_MAX_LENGTH} characters",
                details=[{"field": "resolution_notes", "message": "invalid length"}]
            )

        blocker = await self._require(blocker_id)
        if blocker.status == BlockerStatus.RESOLVED.value:
            raise AlreadyResolvedError("This blocker is already resolved.")

        applied = await self._transition(blocker_id, {
            "status": BlockerStatus.RESOLVED.value,
            "resolution_notes": notes,
            "resolved_at": self.clock(),
            "resolved_by": actor_id,
        })
        if not applied:
            raise await self._conflict(resolving=True)

        await self.db.commit()
        logger.info(f"Blocker {blocker_id} resolved by {actor_id}")

        self._enqueue(f"notify_blocker_resolved:{blocker_id}", tasks.notify_blocker_resolved, blocker_id)
        return await self._load(blocker_id)

    async def similar_resolved(self, blocker: Blocker, limit: int = 5) -> List[Blocker]:
        """Recently resolved blockers of the same category, for AI triage"""
        stmt = (
            select(Blocker)
            .where(
                Blocker.category == blocker.category,
                Blocker.status == BlockerStatus.RESOLVED.value,
                Blocker.id != blocker.id
            )
            .order_by(Blocker.resolved_at.desc())
            .limit(limit)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    # ------------------------------------------------------------------ read models

    async def get(self, blocker_id: int, viewer: User) -> Blocker:
        blocker = await self._require(blocker_id)
        if blocker.user_id != viewer.id and not is_manager(viewer):
            raise ForbiddenError("You can only view your own blockers.")
        return blocker

    async def my_blockers(self, user: User, status: Optional[BlockerStatus] = None) -> Dict[str, Any]:
        stmt = self._select().where(Blocker.user_id == user.id)
        if status is not None:
            stmt = stmt.where(Blocker.status == BlockerStatus(status).value)
        stmt = stmt.order_by(severity_rank.desc(), Blocker.created_at.desc(), Blocker.id.desc())
        blockers = list((await self.db.execute(stmt)).scalars().all())

        grouped = {
            s.value.lower(): [b for b in blockers if b.status == s.value]
            for s in BlockerStatus
        }
        counts = {name: len(items) for name, items in grouped.items()}
        counts["total"] = len(blockers)
        return {"blockers": blockers, "grouped": grouped, "counts": counts}

    async def active(
        self,
        viewer: User,
        severity: Optional[BlockerSeverity] = None,
        category: Optional[BlockerCategory] = None,
        department: Optional[str] = None
    ) -> Dict[str, Any]:
        """Unresolved blockers for managers, most severe and most recent first"""

        ensure_role(viewer, Role.MANAGER)
        stmt = self._select().where(Blocker.status.in_(_values(ACTIVE_STATES)))
        if severity is not None:
            stmt = stmt.where(Blocker.severity == BlockerSeverity(severity).value)
        if category is not None:
            stmt = stmt.where(Blocker.category == BlockerCategory(category).value)
        if department:
            stmt = stmt.join(User, Blocker.user_id == User.id).where(User.department == department)
        stmt = stmt.order_by(severity_rank.desc(), Blocker.created_at.desc(), Blocker.id.desc())

        blockers = list((await self.db.execute(stmt)).scalars().all())
        counts = {
            s.value.lower(): sum(1 for b in blockers if b.severity == s.value)
            for s in BlockerSeverity
        }
        counts["total"] = len(blockers)
        return {"blockers": blockers, "counts": counts}

    async def analytics(self, viewer: User, days: int = 30) -> Dict[str, Any]:
        """Status, severity, category and department breakdown (admin)"""

        ensure_role(viewer, Role.ADMIN)
        since = self.clock() - timedelta(days=days)
        stmt = (
            select(Blocker, User.department)
            .join(User, Blocker.user_id == User.id)
            .where(Blocker.created_at >= since)
        )
        rows = (await self.db.execute(stmt)).all()
        blockers = [row[0] for row in rows]

        stats: Dict[str, Any] = {
            "total": len(blockers),
            **{s.value.lower(): sum(1 for b in blockers if b.status == s.value) for s in BlockerStatus},
            "by_severity": {
                s.value.lower(): sum(1 for b in blockers if b.severity == s.value) for s in BlockerSeverity
            },
            "by_category": {
                c.value.lower(): sum(1 for b in blockers if b.category == c.value) for c in BlockerCategory
            },
        }

        resolved = [b for b in blockers if b.status == BlockerStatus.RESOLVED.value and b.resolved_at]
        if resolved:
            total_hours = sum(
                (as_utc(b.resolved_at) - as_utc(b.created_at)).total_seconds() / 3600 for b in resolved
            )
            stats["avg_resolution_time_hours"] = round(total_hours / len(resolved), 1)
        else:
            stats["avg_resolution_time_hours"] = None

        by_department: Dict[str, int] = {}
        for _, department in rows:
            by_department[department] = by_department.get(department, 0) + 1
        stats["by_department"] = [
            {"department": name, "count": count} for name, count in by_department.items()
        ]

        return {"stats": stats, "period": f"{days} days"}
