"""
Batch scheduler

A single asyncio poll loop checks the registered jobs every
``scheduler_poll_seconds``. A job is due when the local weekday matches and
the local time falls inside ``[scheduled, scheduled + misfire grace]``.
Each occurrence is claimed through a ``JobRun`` row keyed by the local date,
so a job runs at most once per day across processes. There are no retries;
the next scheduled occurrence is the retry.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Set, Tuple
import asyncio

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..models.enums import JobRunStatus, Role
from ..models.job_run import JobRun
from ..models.standup import Standup
from ..models.user import User
from ..utils.logging import get_logger
from ..utils.time import Clock, utc_now, local_date, local_moment, parse_hhmm, as_utc
from .ai_advisor import AIAdvisor
from .attendance_service import AttendanceService
from .notification_service import NotificationService
from .report_service import ReportService
from .standup_service import SUBMITTED_STATES

logger = get_logger(__name__)

WEEKDAYS = frozenset(range(5))
MONDAY = frozenset({0})

JobFn = Callable[[date], Awaitable[Any]]


@dataclass
class ScheduledJob:
    name: str
    at: time
    weekdays: FrozenSet[int]
    run: JobFn


class JobScheduler:
    """Runs the daily reminder, weekly report and attendance batches"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        advisor: AIAdvisor,
        notifier: NotificationService,
        clock: Clock = utc_now,
        poll_seconds: Optional[float] = None,
        misfire_grace_minutes: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.advisor = advisor
        self.notifier = notifier
        self.clock = clock
        self.poll_seconds = poll_seconds or settings.scheduler_poll_seconds
        grace = settings.scheduler_misfire_grace_minutes if misfire_grace_minutes is None else misfire_grace_minutes
        self.misfire_grace = timedelta(minutes=grace)

        self.jobs: List[ScheduledJob] = [
            ScheduledJob("daily_reminder", parse_hhmm(settings.daily_reminder_time), WEEKDAYS, self.daily_reminder),
            ScheduledJob("weekly_report", parse_hhmm(settings.weekly_report_time), MONDAY, self.weekly_report),
            ScheduledJob("mark_absent", parse_hhmm(settings.mark_absent_time), WEEKDAYS, self.mark_absent),
            ScheduledJob("mark_late", parse_hhmm(settings.mark_late_time), WEEKDAYS, self.mark_late),
        ]
        self._running: Set[str] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.status: Dict[str, Any] = {"last_cycle": None, "errors": 0}

    def get_job(self, name: str) -> ScheduledJob:
        for job in self.jobs:
            if job.name == name:
                return job
        raise KeyError(name)

    # ------------------------------------------------------------------ loop

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._loop_task = asyncio.create_task(self._run_loop(), name="job-scheduler")
        logger.info(f"Scheduler started with {len(self.jobs)} jobs, polling every {self.poll_seconds}s")

    async def stop(self) -> None:
        self._stop.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        logger.info("Scheduler stopped")

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                self.status["errors"] += 1
                logger.error(f"Scheduler cycle failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                continue

    # ------------------------------------------------------------------ due checks

    def due_occurrence(self, job: ScheduledJob, now: datetime) -> Optional[date]:
        """The local day whose occurrence of ``job`` is due at ``now``, if any"""
        now = as_utc(now)
        today = local_date(now)
        # An occurrence late in the evening can still be inside its grace window after midnight
        for day in (today, today - timedelta(days=1)):
            if day.weekday() not in job.weekdays:
                continue
            scheduled = local_moment(day, job.at)
            if scheduled <= now <= scheduled + self.misfire_grace:
                return day
        return None

    async def tick(self, now: Optional[datetime] = None) -> List[Tuple[str, str]]:
        """Run every due job once; returns (job name, outcome) pairs"""
        now = now or self.clock()
        outcomes = []
        for job in self.jobs:
            day = self.due_occurrence(job, now)
            if day is None:
                continue
            try:
                outcome = await self.run_job(job, day)
            except Exception as e:
                # claim/finish bookkeeping failed; other jobs still run
                self.status["errors"] += 1
                logger.error(f"Could not run job {job.name}: {e}", exc_info=True)
                outcome = JobRunStatus.FAILED.value
            outcomes.append((job.name, outcome))
        self.status["last_cycle"] = now
        return outcomes

    # ------------------------------------------------------------------ claiming

    async def _claim(self, job_name: str, run_key: str) -> Optional[int]:
        async with self.session_factory() as session:
            run = JobRun(
                job_name=job_name,
                run_key=run_key,
                status=JobRunStatus.RUNNING.value,
                started_at=self.clock()
            )
            session.add(run)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return None
            return run.id

    async def _finish(self, run_id: int, status: JobRunStatus, error: Optional[str] = None) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(JobRun)
                .where(JobRun.id == run_id)
                .values(status=status.value, finished_at=self.clock(), error=error)
            )
            await session.commit()

    async def run_job(self, job: ScheduledJob, day: date) -> str:
        """Claim and run one occurrence; failures are logged, never raised"""

        if job.name in self._running:
            logger.info(f"Job {job.name} still running, skipping")
            return "skipped"

        run_key = day.isoformat()
        self._running.add(job.name)
        try:
            run_id = await self._claim(job.name, run_key)
            if run_id is None:
                logger.debug(f"Job {job.name} already claimed for {run_key}")
                return "skipped"

            logger.info(f"Running job {job.name} for {run_key}")
            try:
                result = await job.run(day)
            except Exception as e:
                self.status["errors"] += 1
                logger.error(f"Job {job.name} failed for {run_key}: {e}", exc_info=True)
                await self._finish(run_id, JobRunStatus.FAILED, str(e))
                return JobRunStatus.FAILED.value

            await self._finish(run_id, JobRunStatus.SUCCESS)
            logger.info(f"Job {job.name} finished for {run_key}: {result}")
            return JobRunStatus.SUCCESS.value
        finally:
            self._running.discard(job.name)

    # ------------------------------------------------------------------ jobs

    async def daily_reminder(self, day: date) -> int:
        """Remind every active employee who has not submitted a standup today"""

        async with self.session_factory() as session:
            submitted_ids = select(Standup.user_id).where(
                Standup.date == day,
                Standup.status.in_([s.value for s in SUBMITTED_STATES])
            )
            users = (await session.execute(
                select(User).where(
                    User.is_active.is_(True),
                    User.role == Role.EMPLOYEE.value,
                    User.id.not_in(submitted_ids)
                )
            )).scalars().all()

        sent = 0
        for user in users:
            try:
                if await self.notifier.send_daily_reminder(user):
                    sent += 1
            except Exception as e:
                logger.error(f"Daily reminder for user {user.id} failed: {e}")

        logger.info(f"Daily reminders sent: {sent}/{len(users)}")
        return sent

    async def weekly_report(self, day: date) -> Dict[str, Any]:
        async with self.session_factory() as session:
            result = await ReportService(session, clock=self.clock).weekly_report(self.advisor)

        delivered = await self.notifier.send_weekly_summary(result["report"])
        if not delivered:
            logger.warning("Weekly summary was not delivered")
        return result["metrics"]

    async def mark_absent(self, day: date) -> int:
        async with self.session_factory() as session:
            return await AttendanceService(session, clock=self.clock).mark_absent(day)

    async def mark_late(self, day: date) -> int:
        async with self.session_factory() as session:
            return await AttendanceService(session, clock=self.clock).mark_late(day)
