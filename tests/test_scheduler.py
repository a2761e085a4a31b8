from datetime import date, datetime, timezone

import pytest
from sqlalchemy import select

from conftest import ACHIEVEMENT, GOAL
from milestone.models import Attendance, JobRun, NotificationLog
from milestone.models.enums import AttendanceStatus, GoalStatus, JobRunStatus
from milestone.services.scheduler import JobScheduler
from milestone.services.standup_service import StandupService


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def scheduler(session_factory, advisor, notifier, clock):
    return JobScheduler(session_factory, advisor, notifier, clock=clock, poll_seconds=1, misfire_grace_minutes=60)


async def job_runs(db):
    return (await db.execute(select(JobRun).order_by(JobRun.id))).scalars().all()


@pytest.mark.parametrize("name, now, expected", [
    ("daily_reminder", at(4, 18, 30), date(2026, 3, 4)),
    ("daily_reminder", at(4, 17, 59), None),
    ("daily_reminder", at(4, 19, 1), None),
    ("daily_reminder", at(7, 18, 30), None),  # Saturday
    ("weekly_report", at(2, 9, 30), date(2026, 3, 2)),
    ("weekly_report", at(4, 9, 30), None),
    ("mark_absent", at(5, 0, 30), date(2026, 3, 4)),  # grace window crosses midnight
])
def test_due_occurrence(scheduler, name, now, expected):
    assert scheduler.due_occurrence(scheduler.get_job(name), now) == expected


async def test_tick_runs_due_job_once_per_day(scheduler, db, employee):
    first = await scheduler.tick(at(4, 18, 5))
    second = await scheduler.tick(at(4, 18, 40))

    assert first == [("daily_reminder", JobRunStatus.SUCCESS.value)]
    assert second == [("daily_reminder", "skipped")]

    runs = await job_runs(db)
    assert [(r.job_name, r.run_key, r.status) for r in runs] == [
        ("daily_reminder", "2026-03-04", JobRunStatus.SUCCESS.value)
    ]


async def test_job_still_running_in_process_is_skipped(scheduler):
    scheduler._running.add("daily_reminder")
    outcome = await scheduler.run_job(scheduler.get_job("daily_reminder"), date(2026, 3, 4))
    assert outcome == "skipped"


async def test_daily_reminder_skips_users_who_submitted(scheduler, db, clock, employee, other_employee, transport):
    standups = StandupService(db, clock=clock)
    standup = await standups.set_goal(employee, GOAL)
    await standups.submit(employee, standup.id, "Export shipped", ACHIEVEMENT, GoalStatus.ACHIEVED)

    sent = await scheduler.daily_reminder(date(2026, 3, 4))

    assert sent == 1
    assert transport.channels() == ["#managers"]
    assert other_employee.name in transport.messages[0]["text"]


async def test_daily_reminder_continues_after_a_failed_send(scheduler, employee, other_employee, transport, db):
    transport.fail_times = 1

    sent = await scheduler.daily_reminder(date(2026, 3, 4))

    assert sent == 1
    logs = (await db.execute(select(NotificationLog.status).order_by(NotificationLog.id))).scalars().all()
    assert sorted(logs) == ["failed", "sent"]


async def test_failing_job_does_not_stop_others(scheduler, db, employee):
    async def explode(day):
        raise RuntimeError("metrics query failed")

    scheduler.get_job("mark_late").run = explode
    scheduler.get_job("weekly_report").at = scheduler.get_job("mark_late").at

    # Monday 10:15: weekly report (moved to 10:00) and mark_late are both due
    outcomes = dict(await scheduler.tick(at(2, 10, 15)))

    assert outcomes == {"weekly_report": JobRunStatus.SUCCESS.value, "mark_late": JobRunStatus.FAILED.value}
    failed = [r for r in await job_runs(db) if r.job_name == "mark_late"][0]
    assert failed.status == JobRunStatus.FAILED.value
    assert "metrics query failed" in failed.error
    assert scheduler.status["errors"] == 1


async def test_weekly_report_goes_to_admin_channel(scheduler, transport, employee):
    metrics = await scheduler.weekly_report(date(2026, 3, 2))

    assert metrics["total_employees"] == 1
    assert transport.channels() == ["#admins"]
    assert "Weekly Summary" in transport.messages[0]["text"]


async def test_mark_absent_job_runs_for_previous_day_after_midnight(scheduler, db, employee):
    outcomes = await scheduler.tick(at(5, 0, 30))
    assert outcomes == [("mark_absent", JobRunStatus.SUCCESS.value)]

    row = (await db.execute(select(Attendance).where(Attendance.user_id == employee.id))).scalar_one()
    assert row.date == date(2026, 3, 4)
    assert row.status == AttendanceStatus.ABSENT.value


async def test_start_and_stop(scheduler):
    await scheduler.start()
    assert scheduler.running
    await scheduler.stop()
    assert not scheduler.running
