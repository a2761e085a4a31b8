"""
Outbound tasks executed by the OutboundTaskQueue.

Each task loads fresh rows in its own session, so it sees the committed
state of the operation that enqueued it.
"""
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.blocker import Blocker
from ..models.file import Attachment
from ..models.standup import Standup
from ..models.user import User
from ..utils.logging import get_logger
from .task_queue import TaskContext

logger = get_logger(__name__)


class NotificationDeliveryError(Exception):
    """Raised so the queue retries an undelivered notification"""
    pass


async def _count_files(session: AsyncSession, standup_id: Optional[int] = None, blocker_id: Optional[int] = None) -> int:
    stmt = select(func.count(Attachment.id))
    if standup_id is not None:
        stmt = stmt.where(Attachment.standup_id == standup_id)
    if blocker_id is not None:
        stmt = stmt.where(Attachment.blocker_id == blocker_id)
    return (await session.execute(stmt)).scalar_one()


async def _load_standup(session: AsyncSession, standup_id: int) -> Tuple[Optional[Standup], Optional[User]]:
    standup = await session.get(Standup, standup_id)
    if standup is None:
        logger.warning(f"Standup {standup_id} vanished before its task ran")
        return None, None
    return standup, await session.get(User, standup.user_id)


async def _load_blocker(session: AsyncSession, blocker_id: int) -> Tuple[Optional[Blocker], Optional[User]]:
    blocker = await session.get(Blocker, blocker_id)
    if blocker is None:
        logger.warning(f"Blocker {blocker_id} vanished before its task ran")
        return None, None
    return blocker, await session.get(User, blocker.user_id)


def _check_delivery(ctx: TaskContext, delivered: bool, what: str) -> None:
    # An unconfigured transport is a skip, not a failure
    if not delivered and ctx.notifier.transport is not None:
        raise NotificationDeliveryError(f"{what} was not delivered")


async def analyze_standup(ctx: TaskContext, standup_id: int) -> None:
    async with ctx.session_factory() as session:
        standup, _ = await _load_standup(session, standup_id)
        if standup is None:
            return

        file_count = await _count_files(session, standup_id=standup_id)
        standup.ai_insights = await ctx.advisor.analyze_standup(standup, file_count)
        await session.commit()
        logger.info(f"Stored AI insights for standup {standup_id}")


async def analyze_blocker(ctx: TaskContext, blocker_id: int) -> None:
    async with ctx.session_factory() as session:
        blocker, _ = await _load_blocker(session, blocker_id)
        if blocker is None:
            return

        # blocker_service enqueues these tasks, so import it lazily
        from .blocker_service import BlockerService
        similar = await BlockerService(session).similar_resolved(blocker)

        blocker.ai_analysis = await ctx.advisor.analyze_blocker(blocker, similar)
        await session.commit()
        logger.info(f"Stored AI analysis for blocker {blocker_id}")


async def notify_submission(ctx: TaskContext, standup_id: int) -> None:
    async with ctx.session_factory() as session:
        standup, user = await _load_standup(session, standup_id)
        if standup is None:
            return
        file_count = await _count_files(session, standup_id=standup_id)

    delivered = await ctx.notifier.send_submission_notification(standup, user, file_count)
    _check_delivery(ctx, delivered, f"Submission notification for standup {standup_id}")


async def notify_review(ctx: TaskContext, standup_id: int, action: str, feedback: Optional[str] = None) -> None:
    async with ctx.session_factory() as session:
        standup, user = await _load_standup(session, standup_id)
        if standup is None:
            return

    delivered = await ctx.notifier.send_review_notification(standup, user, action, feedback)
    _check_delivery(ctx, delivered, f"Review notification for standup {standup_id}")


async def notify_blocker_raised(ctx: TaskContext, blocker_id: int) -> None:
    async with ctx.session_factory() as session:
        blocker, user = await _load_blocker(session, blocker_id)
        if blocker is None:
            return
        file_count = await _count_files(session, blocker_id=blocker_id)

    delivered = await ctx.notifier.send_blocker_alert(blocker, user, file_count)
    _check_delivery(ctx, delivered, f"Blocker alert for blocker {blocker_id}")


async def notify_blocker_admin(ctx: TaskContext, blocker_id: int) -> None:
    if not ctx.notifier.admin_channel:
        logger.warning(f"No admin channel configured, skipping critical alert for blocker {blocker_id}")
        return

    async with ctx.session_factory() as session:
        blocker, user = await _load_blocker(session, blocker_id)
        if blocker is None:
            return
        file_count = await _count_files(session, blocker_id=blocker_id)

    delivered = await ctx.notifier.send_critical_blocker_alert(blocker, user, file_count)
    _check_delivery(ctx, delivered, f"Critical alert for blocker {blocker_id}")


async def notify_blocker_escalated(ctx: TaskContext, blocker_id: int) -> None:
    async with ctx.session_factory() as session:
        blocker, user = await _load_blocker(session, blocker_id)
        if blocker is None:
            return

    delivered = await ctx.notifier.send_blocker_escalation(blocker, user)
    _check_delivery(ctx, delivered, f"Escalation notification for blocker {blocker_id}")


async def notify_blocker_resolved(ctx: TaskContext, blocker_id: int) -> None:
    async with ctx.session_factory() as session:
        blocker, user = await _load_blocker(session, blocker_id)
        if blocker is None:
            return

    delivered = await ctx.notifier.send_blocker_resolution(blocker, user)
    _check_delivery(ctx, delivered, f"Resolution notification for blocker {blocker_id}")
