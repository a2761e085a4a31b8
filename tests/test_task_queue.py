import asyncio

import pytest
from sqlalchemy import select

from conftest import ACHIEVEMENT, BLOCKER_DESCRIPTION, FakeTransport, GOAL
from milestone.models import Standup
from milestone.models.enums import BlockerCategory, BlockerSeverity, GoalStatus
from milestone.services.blocker_service import BlockerService
from milestone.services.notification_service import NotificationService
from milestone.services.standup_service import StandupService
from milestone.services.task_queue import OutboundTaskQueue, TaskContext
from milestone.services.tasks import NotificationDeliveryError, notify_blocker_admin, notify_blocker_raised


class Flaky:
    """Fails ``failures`` times, then succeeds"""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self, ctx, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"attempt {self.calls} failed")
        return value


async def test_failed_task_is_retried_until_success(task_queue):
    task = Flaky(failures=2)
    task_queue.enqueue("flaky", task, 1)

    await task_queue.drain()

    assert task.calls == 3
    assert task_queue.stats == {"succeeded": 1, "failed": 0, "retried": 2}


async def test_task_is_dropped_after_max_attempts(task_queue):
    task = Flaky(failures=10)
    task_queue.enqueue("hopeless", task, 1)

    await task_queue.drain()

    assert task.calls == 3
    assert task_queue.stats["failed"] == 1
    assert task_queue.pending == 0


async def test_workers_process_enqueued_tasks(task_queue):
    seen = []

    async def record(ctx, value):
        seen.append(value)

    await task_queue.start()
    for value in range(5):
        task_queue.enqueue(f"record:{value}", record, value)
    await asyncio.wait_for(task_queue.drain(), timeout=5)
    await task_queue.stop()

    assert sorted(seen) == [0, 1, 2, 3, 4]
    assert not task_queue.running


async def test_submission_tasks_store_insights_and_notify(db, clock, task_queue, transport, employee, session_factory):
    standups = StandupService(db, clock=clock, task_queue=task_queue)
    standup = await standups.set_goal(employee, GOAL)
    await standups.submit(employee, standup.id, "Export shipped", ACHIEVEMENT, GoalStatus.ACHIEVED)

    await task_queue.drain()

    async with session_factory() as session:
        stored = (await session.execute(select(Standup).where(Standup.id == standup.id))).scalar_one()
    assert stored.ai_insights["score"] is not None
    assert transport.channels() == ["#managers"]


async def test_undelivered_notification_is_retried(db, clock, task_queue, transport, employee):
    transport.fail_times = 1
    blockers = BlockerService(db, clock=clock, task_queue=task_queue)
    await blockers.raise_blocker(
        employee, "Staging deploys fail", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, BlockerSeverity.LOW, "Infra"
    )

    await task_queue.drain()

    assert transport.channels() == ["#managers"]
    assert task_queue.stats["retried"] == 1


async def raise_critical(db, clock, task_queue, employee):
    await BlockerService(db, clock=clock, task_queue=task_queue).raise_blocker(
        employee, "Production database is down", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, BlockerSeverity.CRITICAL, "DBA on call"
    )
    await task_queue.drain()


async def test_failed_manager_alert_does_not_resend_admin_alert(db, clock, task_queue, transport, employee):
    transport.fail_on = {"#managers": 1}

    await raise_critical(db, clock, task_queue, employee)

    assert transport.channels() == ["#managers", "#admins"]
    assert task_queue.stats["retried"] == 1


async def test_failed_admin_alert_is_retried_on_its_own(db, clock, task_queue, transport, employee):
    transport.fail_on = {"#admins": 1}

    await raise_critical(db, clock, task_queue, employee)

    assert transport.channels() == ["#managers", "#admins"]
    assert task_queue.stats == {"succeeded": 3, "failed": 0, "retried": 1}


async def test_critical_alert_skipped_without_admin_channel(db, clock, session_factory, advisor, transport, employee):
    notifier = NotificationService(session_factory, transport=transport, manager_channel="#managers")
    ctx = TaskContext(session_factory, advisor, notifier)
    blocker = await BlockerService(db, clock=clock).raise_blocker(
        employee, "Production database is down", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, BlockerSeverity.CRITICAL, "DBA on call"
    )

    await notify_blocker_admin(ctx, blocker.id)

    assert transport.messages == []


async def test_unconfigured_transport_is_not_a_failure(db, clock, session_factory, advisor, employee):
    notifier = NotificationService(session_factory, transport=None)
    ctx = TaskContext(session_factory, advisor, notifier)
    blocker = await BlockerService(db, clock=clock).raise_blocker(
        employee, "Staging deploys fail", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, BlockerSeverity.LOW, "Infra"
    )

    await notify_blocker_raised(ctx, blocker.id)


async def test_delivery_failure_raises_for_retry(db, clock, session_factory, advisor, employee):
    notifier = NotificationService(session_factory, transport=FakeTransport(fail_times=5), manager_channel="#m")
    ctx = TaskContext(session_factory, advisor, notifier)
    blocker = await BlockerService(db, clock=clock).raise_blocker(
        employee, "Staging deploys fail", BLOCKER_DESCRIPTION,
        BlockerCategory.TECHNICAL, BlockerSeverity.LOW, "Infra"
    )

    with pytest.raises(NotificationDeliveryError):
        await notify_blocker_raised(ctx, blocker.id)


async def test_task_for_missing_row_is_a_noop(session_factory, advisor, notifier, transport):
    ctx = TaskContext(session_factory, advisor, notifier)
    queue = OutboundTaskQueue(ctx, workers=1, max_attempts=1, base_delay=0)

    queue.enqueue("notify_blocker_raised:404", notify_blocker_raised, 404)
    await queue.drain()

    assert queue.stats["succeeded"] == 1
    assert transport.messages == []
