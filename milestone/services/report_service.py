from typing import Any, Dict, List, Sequence
from datetime import date, timedelta
import math
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from ..models.attendance import Attendance
from ..models.blocker import Blocker
from ..models.standup import Standup
from ..models.user import User
from ..models.enums import BlockerSeverity, BlockerStatus, GoalStatus, Role, StandupStatus
from ..utils.logging import get_logger
from ..utils.time import Clock, utc_now, local_date
from .ai_advisor import AIAdvisor

logger = get_logger(__name__)

SUBMITTED_STATES = (StandupStatus.SUBMITTED.value, StandupStatus.APPROVED.value, StandupStatus.NEEDS_ATTENTION.value)
ACTIVE_BLOCKER_STATES = (BlockerStatus.OPEN.value, BlockerStatus.IN_PROGRESS.value, BlockerStatus.ESCALATED.value)
TREND_PERIODS = {"7d": 7, "30d": 30, "90d": 90}


def percent(part: int, whole: int) -> int:
    """Whole-number percentage, half rounded up; 0 when ``whole`` is 0"""
    if whole <= 0:
        return 0
    return math.floor(part * 100 / whole + 0.5)


def average_hours(records: Sequence[Attendance]) -> float:
    hours = [r.hours_worked for r in records if r.hours_worked is not None]
    if not hours:
        return 0.0
    return round(sum(hours) / len(hours), 1)


def completion_rate(standups: Sequence[Any]) -> int:
    with_outcome = [s for s in standups if s.goal_status is not None]
    achieved = sum(1 for s in with_outcome if s.goal_status == GoalStatus.ACHIEVED.value)
    return percent(achieved, len(with_outcome))


class ReportService:
    """Aggregations for the weekly report and the admin analytics dashboards"""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    def today(self) -> date:
        return local_date(self.clock())

    async def _count_employees(self) -> int:
        return (await self.db.execute(
            select(func.count(User.id)).where(User.is_active.is_(True), User.role == Role.EMPLOYEE.value)
        )).scalar_one()

    async def weekly_metrics(self, days: int = 7) -> Dict[str, Any]:
        now = self.clock()
        since_day = local_date(now) - timedelta(days=days)
        since = now - timedelta(days=days)

        standup_rows = (await self.db.execute(
            select(Standup.status, Standup.goal_status, User.department)
            .join(User, Standup.user_id == User.id)
            .where(Standup.date >= since_day)
        )).all()
        blocker_rows = (await self.db.execute(
            select(Blocker.severity, Blocker.status, User.department)
            .join(User, Blocker.user_id == User.id)
            .where(Blocker.created_at >= since)
        )).all()
        employees = await self._count_employees()

        submitted = sum(1 for row in standup_rows if row.status != StandupStatus.PENDING.value)

        departments: List[str] = []
        for row in list(standup_rows) + list(blocker_rows):
            if row.department not in departments:
                departments.append(row.department)

        metrics = {
            "period_days": days,
            "total_standups": len(standup_rows),
            "total_employees": employees,
            "submission_rate": percent(submitted, employees * days),
            "completion_rate": completion_rate(standup_rows),
            "blocker_count": len(blocker_rows),
            "blockers_by_severity": {
                s.value.lower(): sum(1 for row in blocker_rows if row.severity == s.value)
                for s in BlockerSeverity
            },
            "resolved_blockers": sum(1 for row in blocker_rows if row.status == BlockerStatus.RESOLVED.value),
            "by_department": [
                {
                    "department": dept,
                    "standups": sum(1 for row in standup_rows if row.department == dept),
                    "blockers": sum(1 for row in blocker_rows if row.department == dept),
                }
                for dept in departments
            ],
        }
        logger.info(
            f"Weekly metrics: {metrics['total_standups']} standups, "
            f"{metrics['submission_rate']}% submitted, {metrics['blocker_count']} blockers"
        )
        return metrics

    async def weekly_report(self, advisor: AIAdvisor) -> Dict[str, Any]:
        """Metrics plus the AI summary (or its deterministic fallback)"""
        metrics = await self.weekly_metrics()
        report = await advisor.generate_weekly_report(metrics)
        report.update({
            "submission_rate": metrics["submission_rate"],
            "completion_rate": metrics["completion_rate"],
            "blocker_count": metrics["blocker_count"],
        })
        return {"metrics": metrics, "report": report}

    # ------------------------------------------------------------------ analytics

    async def overview(self, days: int = 30) -> Dict[str, Any]:
        """Organisation dashboard: today's activity plus the trailing window"""
        today = self.today()
        since_day = today - timedelta(days=days)
        since = self.clock() - timedelta(days=days)

        employees = await self._count_employees()
        today_standups = (await self.db.execute(
            select(Standup.status).where(Standup.date == today)
        )).all()
        today_attendance = (await self.db.execute(
            select(Attendance).where(Attendance.date == today)
        )).scalars().all()
        active_blockers = (await self.db.execute(
            select(func.count(Blocker.id)).where(Blocker.status.in_(ACTIVE_BLOCKER_STATES))
        )).scalar_one()
        critical_blockers = (await self.db.execute(
            select(func.count(Blocker.id)).where(
                Blocker.severity == BlockerSeverity.CRITICAL.value,
                Blocker.status != BlockerStatus.RESOLVED.value
            )
        )).scalar_one()
        window_standups = (await self.db.execute(
            select(Standup.goal_status).where(Standup.date >= since_day)
        )).all()
        window_blockers = (await self.db.execute(
            select(Blocker.status).where(Blocker.created_at >= since)
        )).all()

        submitted = sum(1 for row in today_standups if row.status in SUBMITTED_STATES)
        logged_in = sum(1 for a in today_attendance if a.login_time is not None)

        return {
            "today": {
                "date": today.isoformat(),
                "total_employees": employees,
                "goals_set": sum(1 for row in today_standups if row.status != StandupStatus.PENDING.value),
                "submissions_count": submitted,
                "submission_rate": percent(submitted, employees),
                "active_blockers": active_blockers,
                "critical_blockers": critical_blockers,
                "logged_in": logged_in,
                "attendance_rate": percent(logged_in, employees),
                "avg_hours_worked": average_hours(today_attendance),
            },
            "window": {
                "days": days,
                "completion_rate": completion_rate(window_standups),
                "total_standups": len(window_standups),
                "total_blockers": len(window_blockers),
                "resolved_blockers": sum(1 for row in window_blockers if row.status == BlockerStatus.RESOLVED.value),
            },
        }

    async def department_stats(self, department: str, days: int = 30) -> Dict[str, Any]:
        since_day = self.today() - timedelta(days=days)
        since = self.clock() - timedelta(days=days)

        users = (await self.db.execute(
            select(User)
            .where(User.department == department, User.is_active.is_(True))
            .order_by(User.name)
        )).scalars().all()
        user_ids = [u.id for u in users]

        standups: List[Any] = []
        blockers: List[Any] = []
        attendance: List[Attendance] = []
        if user_ids:
            standups = (await self.db.execute(
                select(Standup.status, Standup.goal_status)
                .where(Standup.user_id.in_(user_ids), Standup.date >= since_day)
            )).all()
            blockers = (await self.db.execute(
                select(Blocker.status)
                .where(Blocker.user_id.in_(user_ids), Blocker.created_at >= since)
            )).all()
            attendance = (await self.db.execute(
                select(Attendance)
                .where(Attendance.user_id.in_(user_ids), Attendance.date >= since_day)
            )).scalars().all()

        goals_set = sum(1 for row in standups if row.status != StandupStatus.PENDING.value)
        return {
            "department": department,
            "period_days": days,
            "employees": users,
            "metrics": {
                "total_standups": len(standups),
                "submission_rate": percent(goals_set, len(users) * days),
                "completion_rate": completion_rate(standups),
                "total_blockers": len(blockers),
                "active_blockers": sum(1 for row in blockers if row.status != BlockerStatus.RESOLVED.value),
                "avg_hours_worked": average_hours(attendance),
            },
        }

    async def productivity_trends(self, period: str = "30d") -> Dict[str, Any]:
        """Per-day submission and completion rates over the last 7, 30 or 90 days"""
        days = TREND_PERIODS[period]
        end = self.today()
        start = end - timedelta(days=days - 1)

        rows = (await self.db.execute(
            select(Standup.date, Standup.status, Standup.goal_status)
            .where(Standup.date >= start, Standup.date <= end)
        )).all()
        employees = await self._count_employees()

        by_day: Dict[date, List[Any]] = {}
        for row in rows:
            by_day.setdefault(row.date, []).append(row)

        trends = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            day_rows = by_day.get(day, [])
            submitted = sum(1 for row in day_rows if row.status in SUBMITTED_STATES)
            trends.append({
                "date": day.isoformat(),
                "submissions": submitted,
                "submission_rate": percent(submitted, employees),
                "completion_rate": completion_rate(day_rows),
            })

        return {
            "period": period,
            "trends": trends,
            "summary": {
                "avg_submission_rate": round(sum(t["submission_rate"] for t in trends) / len(trends)),
                "avg_completion_rate": round(sum(t["completion_rate"] for t in trends) / len(trends)),
            },
        }
