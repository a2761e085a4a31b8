import pytest
from sqlalchemy import select

from conftest import BLOCKER_DESCRIPTION, FakeTransport
from milestone.models import Blocker, NotificationLog
from milestone.models.enums import BlockerCategory, BlockerSeverity, NotificationType
from milestone.services.blocker_service import BlockerService
from milestone.services.notification_service import NotificationService


def make_blocker(user, severity: BlockerSeverity) -> Blocker:
    return Blocker(
        id=7,
        user_id=user.id,
        title="Staging deploys fail",
        description=BLOCKER_DESCRIPTION,
        category="TECHNICAL",
        severity=severity.value,
        support_required="Someone from infra",
        status="OPEN"
    )


async def logs(db):
    return (await db.execute(select(NotificationLog).order_by(NotificationLog.id))).scalars().all()


async def test_blocker_alert_goes_to_manager_channel(notifier, transport, employee):
    delivered = await notifier.send_blocker_alert(make_blocker(employee, BlockerSeverity.CRITICAL), employee, file_count=2)

    assert delivered is True
    assert transport.channels() == ["#managers"]


async def test_critical_blocker_alert_goes_to_admin_channel(notifier, transport, employee):
    delivered = await notifier.send_critical_blocker_alert(make_blocker(employee, BlockerSeverity.CRITICAL), employee)

    assert delivered is True
    assert transport.channels() == ["#admins"]
    assert "CRITICAL Blocker - Immediate Attention Required" in str(transport.messages[0]["blocks"])


@pytest.mark.parametrize("severity", [BlockerSeverity.LOW, BlockerSeverity.MEDIUM, BlockerSeverity.HIGH])
async def test_non_critical_blocker_alerts_manager_only(db, clock, task_queue, transport, employee, severity):
    await BlockerService(db, clock=clock, task_queue=task_queue).raise_blocker(
        employee, "Staging deploys fail", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, severity, "Infra"
    )
    await task_queue.drain()

    assert transport.channels() == ["#managers"]


async def test_every_attempt_is_logged(notifier, transport, employee, db):
    await notifier.send_daily_reminder(employee)
    transport.fail_times = 1
    delivered = await notifier.send_daily_reminder(employee)

    assert delivered is False
    rows = await logs(db)
    assert [r.status for r in rows] == ["sent", "failed"]
    assert rows[0].type == NotificationType.DAILY_REMINDER.value
    assert rows[0].recipient == "#managers"
    assert "channel_not_found" in rows[1].error


async def test_missing_transport_skips_without_logging(session_factory, employee, db):
    notifier = NotificationService(session_factory, transport=None, manager_channel="#managers")

    assert await notifier.send_daily_reminder(employee) is False
    assert await logs(db) == []


async def test_weekly_summary_needs_admin_channel(session_factory):
    transport = FakeTransport()
    notifier = NotificationService(session_factory, transport=transport, manager_channel="#managers")

    assert await notifier.send_weekly_summary({"executive_summary": "Quiet week"}) is False
    assert transport.messages == []


async def test_weekly_summary_lists_concerns(notifier, transport):
    report = {
        "executive_summary": "Solid week",
        "submission_rate": 92,
        "completion_rate": 80,
        "blocker_count": 3,
        "concerns": ["Two critical blockers in Engineering"],
        "recommendations": ["Pair on the migration work"],
    }
    assert await notifier.send_weekly_summary(report) is True

    blocks = str(transport.messages[0]["blocks"])
    assert "92%" in blocks
    assert "Two critical blockers in Engineering" in blocks
