from typing import List, Optional, Dict, Any, Sequence, Tuple
from datetime import date, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..models.standup import Standup
from ..models.user import User
from ..models.enums import GoalStatus, ReviewAction, Role, StandupStatus
from ..core.exceptions import (
    AlreadySubmittedError,
    AppError,
    ForbiddenError,
    GoalAlreadySetError,
    InvalidStatusError,
    NoGoalSetError,
    NotFoundError,
    ValidationFailedError,
)
from ..core.permissions import ensure_role, is_manager
from ..config import settings
from ..utils.logging import get_logger
from ..utils.time import Clock, utc_now, local_date, is_late_submission
from .attendance_service import AttendanceService
from .task_queue import OutboundTaskQueue
from . import tasks

logger = get_logger(__name__)

GOAL_MIN_LENGTH = 50
GOAL_MAX_LENGTH = 2000
REASON_MIN_LENGTH = 50
TITLE_MAX_LENGTH = 100
DESC_MIN_LENGTH = 100
DESC_MAX_LENGTH = 5000
MAX_SEQUENCE_ATTEMPTS = 5

SUBMITTABLE = (StandupStatus.GOAL_SET, StandupStatus.NEEDS_ATTENTION)
SUBMITTED_STATES = (StandupStatus.SUBMITTED, StandupStatus.APPROVED, StandupStatus.NEEDS_ATTENTION)

REVIEW_OUTCOME = {
    ReviewAction.APPROVE: StandupStatus.APPROVED,
    ReviewAction.NEEDS_ATTENTION: StandupStatus.NEEDS_ATTENTION,
    ReviewAction.FEEDBACK: StandupStatus.SUBMITTED,
}


def _values(states: Sequence[StandupStatus]) -> List[str]:
    return [s.value for s in states]


class StandupService:
    """Standup lifecycle: create, set goal, submit, review.

    Every transition is a conditional UPDATE guarded by the allowed source
    states, so two concurrent requests cannot both apply a transition.
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

    def today(self) -> date:
        return local_date(self.clock())

    def _enqueue(self, name: str, fn, *args) -> None:
        if self.task_queue is None:
            logger.debug(f"No task queue attached, dropping {name}")
            return
        self.task_queue.enqueue(name, fn, *args)

    # ------------------------------------------------------------------ loading

    def _select(self):
        return select(Standup).options(
            selectinload(Standup.user),
            selectinload(Standup.files),
            selectinload(Standup.blockers)
        ).execution_options(populate_existing=True)

    async def _load(self, standup_id: int) -> Optional[Standup]:
        stmt = self._select().where(Standup.id == standup_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, standup_id: int, viewer: User) -> Standup:
        """A standup visible to ``viewer``: their own, or any for managers"""
        standup = await self._load(standup_id)
        if standup is None or (standup.user_id != viewer.id and not is_manager(viewer)):
            raise NotFoundError("Standup not found")
        return standup

    async def _get_owned(self, standup_id: int, owner: User) -> Standup:
        standup = await self._load(standup_id)
        if standup is None or standup.user_id != owner.id:
            raise NotFoundError("Standup not found")
        return standup

    async def _transition(self, standup_id: int, allowed: Sequence[StandupStatus], values: Dict[str, Any]) -> bool:
        stmt = (
            update(Standup)
            .where(Standup.id == standup_id, Standup.status.in_(_values(allowed)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------ lifecycle

    async def create(self, user: User) -> Standup:
        """Create the next PENDING standup for today.

        The sequence is max+1; a unique violation from a concurrent create
        rolls back and retries with a fresh read.
        """

        # A rollback expires every instance in the session, so keep plain ids
        user_id = user.id
        day = self.today()
        for attempt in range(1, MAX_SEQUENCE_ATTEMPTS + 1):
            current = await self.db.execute(
                select(func.coalesce(func.max(Standup.sequence), 0))
                .where(Standup.user_id == user_id, Standup.date == day)
            )
            sequence = current.scalar_one() + 1

            standup = Standup(
                user_id=user_id,
                date=day,
                sequence=sequence,
                status=StandupStatus.PENDING.value,
                task_refs=[]
            )
            self.db.add(standup)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(f"Sequence {sequence} for user {user_id} on {day} taken, retrying (attempt {attempt})")
                continue

            logger.info(f"Created standup #{sequence} for user {user_id} on {day}")
            return await self._load(standup.id)

        raise AppError("Could not allocate a standup sequence, please retry", code="SERVER_ERROR", status_code=503)

    async def set_goal(
        self,
        user: User,
        today_goal: str,
        standup_id: Optional[int] = None,
        task_refs: Optional[List[str]] = None
    ) -> Standup:
        """Set the morning goal, creating a standup first when no id is given"""

        user_id = user.id
        goal = (today_goal or "").strip()
        if not GOAL_MIN_LENGTH <= len(goal) <= GOAL_MAX_LENGTH:
            raise ValidationFailedError(
                f"Goal must be between {GOAL_MIN_LENGTH} and {GOAL_MAX_LENGTH} characters",
                details=[{"field": "today_goal", "message": "invalid length"}]
            )

        if standup_id is None:
            standup = await self.create(user)
        else:
            standup = await self._get_owned(standup_id, user)
            if standup.status != StandupStatus.PENDING.value:
                raise GoalAlreadySetError("Goal already set for this standup.")
        standup_id = standup.id

        applied = await self._transition(standup_id, [StandupStatus.PENDING], {
            "today_goal": goal,
            "goal_set_time": self.clock(),
            "task_refs": list(task_refs or []),
            "status": StandupStatus.GOAL_SET.value,
        })
        if not applied:
            await self.db.rollback()
            raise GoalAlreadySetError("Goal already set for this standup.")

        await self.db.commit()
        logger.info(f"Goal set for standup {standup_id} (user {user_id})")
        return await self._load(standup_id)

    @staticmethod
    def _check_submittable(status: str) -> None:
        if status == StandupStatus.PENDING.value:
            raise NoGoalSetError("Please set a goal before submitting your achievement.")
        if status in (StandupStatus.SUBMITTED.value, StandupStatus.APPROVED.value):
            raise AlreadySubmittedError("This standup has already been submitted.")
        if status not in _values(SUBMITTABLE):
            raise InvalidStatusError(f"Standup cannot be submitted from status {status}")

    async def submit(
        self,
        user: User,
        standup_id: int,
        achievement_title: str,
        achievement_desc: str,
        goal_status: GoalStatus,
        completion_percentage: Optional[int] = None,
        not_achieved_reason: Optional[str] = None
    ) -> Standup:
        """Submit the end-of-day achievement.

        Also stamps the day's attendance logout, then enqueues AI analysis
        and the manager notification.
        """

        achievement_title = (achievement_title or "").strip()
        achievement_desc = (achievement_desc or "").strip()
        if not 1 <= len(achievement_title) <= TITLE_MAX_LENGTH:
            raise ValidationFailedError(
                f"Achievement title must be between 1 and {TITLE_MAX_LENGTH} characters",
                details=[{"field": "achievement_title", "message": "invalid length"}]
            )
        if not DESC_MIN_LENGTH <= len(achievement_desc) <= DESC_MAX_LENGTH:
            raise ValidationFailedError(
                f"Achievement description must be between {DESC_MIN_LENGTH} and {DESC_MAX_LENGTH} characters",
                details=[{"field": "achievement_desc", "message": "invalid length"}]
            )

        goal_status = GoalStatus(goal_status)
        if goal_status != GoalStatus.ACHIEVED:
            reason = (not_achieved_reason or "").strip()
            if len(reason) < REASON_MIN_LENGTH:
                raise ValidationFailedError(
                    f"Reason must be at least {REASON_MIN_LENGTH} characters when goal not fully achieved",
                    details=[{"field": "not_achieved_reason", "message": "too short"}]
                )
            not_achieved_reason = reason

        if completion_percentage is None and goal_status == GoalStatus.ACHIEVED:
            completion_percentage = 100

        user_id = user.id
        standup = await self._get_owned(standup_id, user)
        self._check_submittable(standup.status)

        now = self.clock()
        applied = await self._transition(standup_id, SUBMITTABLE, {
            "achievement_title": achievement_title,
            "achievement_desc": achievement_desc,
            "goal_status": goal_status.value,
            "completion_percentage": completion_percentage,
            "not_achieved_reason": not_achieved_reason,
            "submission_time": now,
            "is_late_submission": is_late_submission(now),
            "status": StandupStatus.SUBMITTED.value,
        })
        if not applied:
            await self.db.rollback()
            current = await self._load(standup_id)
            self._check_submittable(current.status)
            raise InvalidStatusError("Standup changed while submitting, please retry")

        await self.db.commit()
        logger.info(f"Standup {standup_id} submitted by user {user_id} ({goal_status.value})")

        await AttendanceService(self.db, clock=self.clock).record_logout(user_id, at=now)

        self._enqueue(f"analyze_standup:{standup_id}", tasks.analyze_standup, standup_id)
        self._enqueue(f"notify_submission:{standup_id}", tasks.notify_submission, standup_id)

        return await self._load(standup_id)

    async def review(
        self,
        standup_id: int,
        reviewer: User,
        action: ReviewAction,
        feedback: Optional[str] = None
    ) -> Standup:
        """Approve, flag or comment on a SUBMITTED standup (manager+)"""

        ensure_role(reviewer, Role.MANAGER)
        reviewer_id = reviewer.id
        action = ReviewAction(action)

        standup = await self._load(standup_id)
        if standup is None:
            raise NotFoundError("Standup not found")
        if standup.status != StandupStatus.SUBMITTED.value:
            raise InvalidStatusError("This standup is not in a reviewable state.")

        values: Dict[str, Any] = {
            "status": REVIEW_OUTCOME[action].value,
            "reviewed_by": reviewer_id,
            "reviewed_at": self.clock(),
        }
        if feedback:
            values["manager_feedback"] = feedback

        applied = await self._transition(standup_id, [StandupStatus.SUBMITTED], values)
        if not applied:
            await self.db.rollback()
            raise InvalidStatusError("This standup is not in a reviewable state.")

        await self.db.commit()
        logger.info(f"Standup {standup_id} reviewed by {reviewer_id}: {action.value}")

        self._enqueue(f"notify_review:{standup_id}", tasks.notify_review, standup_id, action.value, feedback)
        return await self._load(standup_id)

    # ------------------------------------------------------------------ read models

    async def list_today(self, user: User) -> List[Standup]:
        stmt = (
            self._select()
            .where(Standup.user_id == user.id, Standup.date == self.today())
            .order_by(Standup.sequence.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def history(
        self,
        viewer: User,
        user_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 30,
        offset: int = 0
    ) -> Tuple[List[Standup], int]:
        """Paginated history, newest day first; same-day standups by sequence"""

        target_id = viewer.id
        if user_id is not None and user_id != viewer.id:
            if not is_manager(viewer):
                raise ForbiddenError("You can only view your own history.")
            target_id = user_id

        conditions = [Standup.user_id == target_id]
        if start_date:
            conditions.append(Standup.date >= start_date)
        if end_date:
            conditions.append(Standup.date <= end_date)

        total = (await self.db.execute(select(func.count(Standup.id)).where(*conditions))).scalar_one()

        stmt = (
            self._select()
            .where(*conditions)
            .order_by(Standup.date.desc(), Standup.sequence.asc())
            .limit(limit)
            .offset(offset)
        )
        standups = list((await self.db.execute(stmt)).scalars().all())
        return standups, total

    async def recent(self, user: User, days: int = 7) -> List[Standup]:
        since = self.today() - timedelta(days=days)
        stmt = (
            select(Standup)
            .where(Standup.user_id == user.id, Standup.date >= since)
            .order_by(Standup.date.desc(), Standup.sequence.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def pending_reviews(self, reviewer: User) -> List[Standup]:
        ensure_role(reviewer, Role.MANAGER)
        since = self.today() - timedelta(days=settings.pending_review_days)
        stmt = (
            self._select()
            .where(Standup.status == StandupStatus.SUBMITTED.value, Standup.date >= since)
            .order_by(Standup.submission_time.desc(), Standup.id.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def team_overview(self, viewer: User) -> Dict[str, Any]:
        """Today's status per user: employees for managers, everyone for admins"""

        ensure_role(viewer, Role.MANAGER)
        user_stmt = select(User).where(User.is_active.is_(True)).order_by(User.name)
        if viewer.role != Role.ADMIN.value:
            user_stmt = user_stmt.where(User.role == Role.EMPLOYEE.value)
        users = list((await self.db.execute(user_stmt)).scalars().all())

        standups: List[Standup] = []
        if users:
            stmt = (
                select(Standup)
                .where(Standup.date == self.today(), Standup.user_id.in_([u.id for u in users]))
                .order_by(Standup.sequence.asc())
            )
            standups = list((await self.db.execute(stmt)).scalars().all())

        latest: Dict[int, Standup] = {}
        counts: Dict[int, int] = {}
        for standup in standups:
            latest[standup.user_id] = standup
            counts[standup.user_id] = counts.get(standup.user_id, 0) + 1

        overview = [
            {
                "user": user,
                "standup": latest.get(user.id),
                "standup_count": counts.get(user.id, 0),
                "status": latest[user.id].status if user.id in latest else "NO_STANDUP",
            }
            for user in users
        ]

        stats = {
            "total": len(users),
            "goals_set": sum(1 for s in standups if s.status != StandupStatus.PENDING.value),
            "submitted": sum(1 for s in standups if s.status in _values(SUBMITTED_STATES)),
            "approved": sum(1 for s in standups if s.status == StandupStatus.APPROVED.value),
            "pending": sum(1 for s in standups if s.status == StandupStatus.SUBMITTED.value),
        }
        return {"overview": overview, "stats": stats}
