from typing import Any, Dict, List, Optional, Sequence, Tuple
from datetime import date, datetime, time, timedelta
from calendar import monthrange
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..models.attendance import Attendance
from ..models.user import User
from ..models.enums import AttendanceStatus, Role
from ..utils.logging import get_logger
from ..utils.time import Clock, utc_now, local_date, local_moment, as_utc, hours_between, parse_hhmm
from ..config import settings

logger = get_logger(__name__)


class AttendanceService:
    """Derives daily presence from login/logout events and batch reconciliation"""

    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    def today(self) -> date:
        return local_date(self.clock())

    async def get_for_day(self, user_id: int, day: date) -> Optional[Attendance]:
        stmt = select(Attendance).where(Attendance.user_id == user_id, Attendance.date == day)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def record_login(self, user_id: int, at: Optional[datetime] = None) -> Attendance:
        """Create today's row on first login; an existing login time is never replaced."""

        at = at or self.clock()
        day = local_date(at)

        attendance = await self.get_for_day(user_id, day)
        if attendance is not None:
            if attendance.login_time is None:
                # Row pre-created by the absence batch, the user showed up after all
                attendance.login_time = at
                attendance.status = AttendanceStatus.PRESENT.value
                await self.db.commit()
            return attendance

        attendance = Attendance(
            user_id=user_id,
            date=day,
            login_time=at,
            status=AttendanceStatus.PRESENT.value
        )
        self.db.add(attendance)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request created the row first
            await self.db.rollback()
            return await self.get_for_day(user_id, day)

        await self.db.refresh(attendance)
        logger.info(f"Recorded login for user {user_id} on {day}")
        return attendance

    async def record_logout(
        self,
        user_id: int,
        at: Optional[datetime] = None,
        overwrite: bool = True
    ) -> Optional[Attendance]:
        """Stamp logout time and hours worked on the day's row.

        With ``overwrite=False`` an existing logout time is kept.
        """

        at = at or self.clock()
        attendance = await self.get_for_day(user_id, local_date(at))
        if attendance is None:
            logger.debug(f"No attendance row for user {user_id}, logout not recorded")
            return None

        if attendance.logout_time is not None and not overwrite:
            return attendance

        attendance.logout_time = at
        attendance.hours_worked = hours_between(attendance.login_time, at)
        await self.db.commit()
        return attendance

    # ------------------------------------------------------------------ read models

    async def get_month(self, user_id: int, month: int, year: int) -> Tuple[List[Attendance], Dict[str, Any]]:
        start = date(year, month, 1)
        end = date(year, month, monthrange(year, month)[1])

        stmt = (
            select(Attendance)
            .where(Attendance.user_id == user_id, Attendance.date >= start, Attendance.date <= end)
            .order_by(Attendance.date.asc())
        )
        result = await self.db.execute(stmt)
        records = list(result.scalars().all())
        return records, self.summarize(records)

    @staticmethod
    def summarize(records: Sequence[Attendance]) -> Dict[str, Any]:
        hours = [r.hours_worked for r in records if r.hours_worked is not None]
        return {
            "total_days": len(records),
            "present": sum(1 for r in records if r.status == AttendanceStatus.PRESENT.value),
            "absent": sum(1 for r in records if r.status == AttendanceStatus.ABSENT.value),
            "late": sum(1 for r in records if r.status == AttendanceStatus.LATE.value),
            "half_day": sum(1 for r in records if r.status == AttendanceStatus.HALF_DAY.value),
            "avg_hours_worked": round(sum(hours) / len(hours), 2) if hours else 0,
            "total_hours_worked": round(sum(hours), 2),
        }

    async def report(
        self,
        start: date,
        end: date,
        department: Optional[str] = None
    ) -> Dict[str, Any]:
        """Attendance report per active employee and per department"""

        user_stmt = select(User).where(User.is_active.is_(True), User.role == Role.EMPLOYEE.value)
        if department:
            user_stmt = user_stmt.where(User.department == department)
        users = list((await self.db.execute(user_stmt.order_by(User.name))).scalars().all())
        user_ids = [u.id for u in users]

        records: List[Attendance] = []
        if user_ids:
            stmt = (
                select(Attendance)
                .where(Attendance.user_id.in_(user_ids), Attendance.date >= start, Attendance.date <= end)
                .order_by(Attendance.date.desc())
            )
            records = list((await self.db.execute(stmt)).scalars().all())

        by_user: Dict[int, List[Attendance]] = {uid: [] for uid in user_ids}
        for record in records:
            by_user[record.user_id].append(record)

        rows = [
            {"user": user, "stats": self.summarize(by_user[user.id])}
            for user in users
        ]

        by_department: Dict[str, Dict[str, Any]] = {}
        for user in users:
            dept = by_department.setdefault(user.department, {"employees": 0, "records": []})
            dept["employees"] += 1
            dept["records"].extend(by_user[user.id])

        overall = self.summarize(records)
        return {
            "report": rows,
            "summary": {
                "total_employees": len(users),
                "total_records": len(records),
                "overall_stats": {k: overall[k] for k in ("present", "absent", "late", "half_day")},
                "by_department": {
                    name: {
                        "employees": data["employees"],
                        "present": self.summarize(data["records"])["present"],
                        "avg_hours_worked": self.summarize(data["records"])["avg_hours_worked"],
                    }
                    for name, data in by_department.items()
                },
            },
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        }

    async def team_today(self) -> Dict[str, Any]:
        today = self.today()
        users = list((await self.db.execute(
            select(User).where(User.is_active.is_(True)).order_by(User.name)
        )).scalars().all())
        records = (await self.db.execute(select(Attendance).where(Attendance.date == today))).scalars().all()
        by_user = {r.user_id: r for r in records}

        team = [
            {
                "user": user,
                "attendance": by_user.get(user.id),
                "is_logged_in": bool(by_user.get(user.id) and by_user[user.id].login_time),
                "has_submitted": bool(by_user.get(user.id) and by_user[user.id].logout_time),
            }
            for user in users
        ]
        return {
            "team_status": team,
            "stats": {
                "total": len(team),
                "logged_in": sum(1 for t in team if t["is_logged_in"]),
                "submitted": sum(1 for t in team if t["has_submitted"]),
                "not_logged_in": sum(1 for t in team if not t["is_logged_in"]),
            },
        }

    # ------------------------------------------------------------------ batch reconciliation

    async def mark_absent(self, day: Optional[date] = None) -> int:
        """Create an ABSENT row for every active employee without one for ``day``."""

        day = day or self.today()
        created = 0

        for attempt in range(2):
            employees = (await self.db.execute(
                select(User.id).where(User.is_active.is_(True), User.role == Role.EMPLOYEE.value)
            )).scalars().all()
            present_ids = set((await self.db.execute(
                select(Attendance.user_id).where(Attendance.date == day)
            )).scalars().all())

            missing = [uid for uid in employees if uid not in present_ids]
            for user_id in missing:
                self.db.add(Attendance(user_id=user_id, date=day, status=AttendanceStatus.ABSENT.value))

            try:
                await self.db.commit()
                created = len(missing)
                break
            except IntegrityError:
                # Someone logged in while we were inserting; recompute once
                await self.db.rollback()
                logger.warning(f"Concurrent attendance insert while marking absent for {day}, retrying")
                if attempt == 1:
                    raise

        logger.info(f"Marked {created} users as absent for {day}")
        return created

    async def mark_late(self, day: Optional[date] = None, cutoff: Optional[time] = None) -> int:
        """PRESENT rows whose login is after the local cutoff become LATE (one way)."""

        day = day or self.today()
        cutoff = cutoff or parse_hhmm(settings.late_login_cutoff)
        cutoff_at = local_moment(day, cutoff)

        stmt = select(Attendance).where(
            Attendance.date == day,
            Attendance.status == AttendanceStatus.PRESENT.value,
            Attendance.login_time.is_not(None)
        )
        candidates = (await self.db.execute(stmt)).scalars().all()
        late_ids = [r.id for r in candidates if as_utc(r.login_time) > cutoff_at]

        if not late_ids:
            logger.info(f"Marked 0 users as late for {day}")
            return 0

        result = await self.db.execute(
            update(Attendance)
            .where(Attendance.id.in_(late_ids), Attendance.status == AttendanceStatus.PRESENT.value)
            .values(status=AttendanceStatus.LATE.value)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()

        logger.info(f"Marked {result.rowcount} users as late for {day}")
        return result.rowcount

    def default_report_window(self, end: Optional[date] = None, days: int = 30) -> Tuple[date, date]:
        """The `days` before `end`, which defaults to the local today"""
        end = end or self.today()
        return end - timedelta(days=days), end
