import pytest

from conftest import ACHIEVEMENT, BLOCKER_DESCRIPTION, GOAL
from milestone.models.enums import BlockerCategory, BlockerSeverity, GoalStatus
from milestone.services.attendance_service import AttendanceService
from milestone.services.blocker_service import BlockerService
from milestone.services.report_service import ReportService
from milestone.services.standup_service import StandupService


@pytest.fixture
async def busy_day(db, clock, employee, other_employee, manager):
    """Emma logs in, works 8h and submits; Frank only sets a goal and raises a CRITICAL blocker"""
    attendance = AttendanceService(db, clock=clock)
    standups = StandupService(db, clock=clock)

    await attendance.record_login(employee.id)
    standup = await standups.set_goal(employee, GOAL)
    await standups.set_goal(other_employee, GOAL)
    await BlockerService(db, clock=clock).raise_blocker(
        other_employee, "Design review tool is down", BLOCKER_DESCRIPTION,
        BlockerCategory.EXTERNAL, BlockerSeverity.CRITICAL, "Vendor support"
    )

    clock.advance(hours=8)
    await standups.submit(employee, standup.id, "Export shipped", ACHIEVEMENT, GoalStatus.ACHIEVED)


@pytest.fixture
def reports(db, clock):
    return ReportService(db, clock=clock)


async def test_overview_today(reports, busy_day):
    overview = await reports.overview()

    assert overview["today"] == {
        "date": "2026-03-04",
        "total_employees": 2,
        "goals_set": 2,
        "submissions_count": 1,
        "submission_rate": 50,
        "active_blockers": 1,
        "critical_blockers": 1,
        "logged_in": 1,
        "attendance_rate": 50,
        "avg_hours_worked": 8.0,
    }
    assert overview["window"] == {
        "days": 30,
        "completion_rate": 100,
        "total_standups": 2,
        "total_blockers": 1,
        "resolved_blockers": 0,
    }


async def test_overview_with_no_activity(reports):
    overview = await reports.overview()

    assert overview["today"]["submission_rate"] == 0
    assert overview["today"]["avg_hours_worked"] == 0.0
    assert overview["window"]["completion_rate"] == 0


async def test_department_stats(reports, busy_day):
    stats = await reports.department_stats("Engineering")

    assert [u.name for u in stats["employees"]] == ["Bob", "Emma"]
    assert stats["metrics"] == {
        "total_standups": 1,
        # one goal over two people for thirty days
        "submission_rate": 2,
        "completion_rate": 100,
        "total_blockers": 0,
        "active_blockers": 0,
        "avg_hours_worked": 8.0,
    }


async def test_department_without_members(reports):
    stats = await reports.department_stats("Legal")

    assert stats["employees"] == []
    assert stats["metrics"]["total_standups"] == 0
    assert stats["metrics"]["submission_rate"] == 0


async def test_productivity_trends(reports, busy_day):
    trends = await reports.productivity_trends("7d")

    assert len(trends["trends"]) == 7
    assert trends["trends"][0]["date"] == "2026-02-26"
    assert trends["trends"][-1] == {
        "date": "2026-03-04",
        "submissions": 1,
        "submission_rate": 50,
        "completion_rate": 100,
    }
    assert all(day["submissions"] == 0 for day in trends["trends"][:-1])
    assert trends["summary"] == {"avg_submission_rate": 7, "avg_completion_rate": 14}
