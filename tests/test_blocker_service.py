import pytest

from conftest import BLOCKER_DESCRIPTION, GOAL
from milestone.core.exceptions import (
    AlreadyResolvedError,
    ForbiddenError,
    InvalidStatusError,
    NotFoundError,
    ValidationFailedError,
)
from milestone.models.enums import BlockerCategory, BlockerSeverity, BlockerStatus
from milestone.services.blocker_service import BlockerService
from milestone.services.standup_service import StandupService

RESOLUTION = "Infra team released the stale migration lock and added a timeout alert."


@pytest.fixture
def service(db, clock, task_queue):
    return BlockerService(db, clock=clock, task_queue=task_queue)


async def raise_one(service, user, severity=BlockerSeverity.MEDIUM, category=BlockerCategory.TECHNICAL, title="Staging deploys fail"):
    return await service.raise_blocker(
        user,
        title=title,
        description=BLOCKER_DESCRIPTION,
        category=category,
        severity=severity,
        support_required="Someone from infra"
    )


async def test_raise_blocker_starts_open_and_enqueues(service, employee, task_queue):
    blocker = await raise_one(service, employee)

    assert blocker.status == BlockerStatus.OPEN.value
    assert blocker.user_id == employee.id
    assert blocker.standup_id is None
    assert task_queue.pending == 2


async def test_critical_blocker_enqueues_admin_alert(service, employee, task_queue):
    await raise_one(service, employee, severity=BlockerSeverity.CRITICAL)

    assert task_queue.pending == 3


async def test_raise_blocker_links_latest_standup_of_today(service, employee, db, clock):
    standups = StandupService(db, clock=clock)
    await standups.create(employee)
    latest = await standups.set_goal(employee, GOAL)

    blocker = await raise_one(service, employee)
    assert blocker.standup_id == latest.id


async def test_raise_blocker_requires_long_description(service, employee):
    with pytest.raises(ValidationFailedError):
        await service.raise_blocker(
            employee, title="Too short", description="short", category=BlockerCategory.OTHER,
            severity=BlockerSeverity.LOW, support_required="help"
        )


async def test_status_escalate_resolve_flow(service, employee, manager):
    blocker = await raise_one(service, employee)

    blocker = await service.update_status(blocker.id, manager, BlockerStatus.IN_PROGRESS)
    assert blocker.status == BlockerStatus.IN_PROGRESS.value

    blocker = await service.escalate(blocker.id, manager, "VP Engineering", "Release at risk")
    assert blocker.status == BlockerStatus.ESCALATED.value
    assert blocker.escalated_to == "VP Engineering"

    blocker = await service.resolve(blocker.id, manager, RESOLUTION)
    assert blocker.status == BlockerStatus.RESOLVED.value
    assert blocker.resolved_by == manager.id
    assert blocker.resolved_at is not None


async def test_escalated_blocker_can_return_to_open(service, employee, manager):
    blocker = await raise_one(service, employee)
    await service.escalate(blocker.id, manager, "Director")

    blocker = await service.update_status(blocker.id, manager, BlockerStatus.OPEN)
    assert blocker.status == BlockerStatus.OPEN.value


async def test_resolved_blocker_is_terminal(service, employee, manager):
    blocker = await raise_one(service, employee)
    await service.resolve(blocker.id, manager, RESOLUTION)

    with pytest.raises(InvalidStatusError):
        await service.update_status(blocker.id, manager, BlockerStatus.OPEN)
    with pytest.raises(InvalidStatusError):
        await service.escalate(blocker.id, manager, "Director")
    with pytest.raises(AlreadyResolvedError):
        await service.resolve(blocker.id, manager, RESOLUTION)

    reloaded = await service.get(blocker.id, manager)
    assert reloaded.status == BlockerStatus.RESOLVED.value
    assert reloaded.escalated_to is None
    assert reloaded.resolution_notes == RESOLUTION


async def test_manual_status_cannot_be_escalated_or_resolved(service, employee, manager):
    blocker = await raise_one(service, employee)
    with pytest.raises(ValidationFailedError):
        await service.update_status(blocker.id, manager, BlockerStatus.RESOLVED)


@pytest.mark.parametrize("notes", ["too short", "x" * 2001])
async def test_resolution_notes_length(service, employee, manager, notes):
    blocker = await raise_one(service, employee)
    with pytest.raises(ValidationFailedError):
        await service.resolve(blocker.id, manager, notes)


async def test_lifecycle_changes_require_manager(service, employee):
    blocker = await raise_one(service, employee)
    with pytest.raises(ForbiddenError):
        await service.resolve(blocker.id, employee, RESOLUTION)


async def test_missing_blocker_is_not_found(service, manager):
    with pytest.raises(NotFoundError):
        await service.escalate(999, manager, "Director")


async def test_get_restricts_employees_to_their_own(service, employee, other_employee, manager):
    blocker = await raise_one(service, employee)

    with pytest.raises(ForbiddenError):
        await service.get(blocker.id, other_employee)
    assert (await service.get(blocker.id, manager)).id == blocker.id


async def test_active_blockers_sorted_by_severity_then_recency(service, employee, manager, clock):
    low = await raise_one(service, employee, BlockerSeverity.LOW, title="Low one")
    clock.advance(minutes=5)
    critical_old = await raise_one(service, employee, BlockerSeverity.CRITICAL, title="Critical old")
    clock.advance(minutes=5)
    high = await raise_one(service, employee, BlockerSeverity.HIGH, title="High one")
    clock.advance(minutes=5)
    critical_new = await raise_one(service, employee, BlockerSeverity.CRITICAL, title="Critical new")
    resolved = await raise_one(service, employee, BlockerSeverity.CRITICAL, title="Resolved one")
    await service.resolve(resolved.id, manager, RESOLUTION)

    result = await service.active(manager)

    assert [b.id for b in result["blockers"]] == [critical_new.id, critical_old.id, high.id, low.id]
    assert result["counts"]["critical"] == 2
    assert result["counts"]["total"] == 4


async def test_active_blockers_filter_by_department(service, employee, other_employee, manager):
    await raise_one(service, employee)
    design = await raise_one(service, other_employee)

    result = await service.active(manager, department="Design")
    assert [b.id for b in result["blockers"]] == [design.id]


async def test_my_blockers_grouped_by_status(service, employee, manager):
    first = await raise_one(service, employee)
    second = await raise_one(service, employee)
    await service.update_status(second.id, manager, BlockerStatus.IN_PROGRESS)

    result = await service.my_blockers(employee)

    assert result["counts"]["total"] == 2
    assert [b.id for b in result["grouped"]["open"]] == [first.id]
    assert [b.id for b in result["grouped"]["in_progress"]] == [second.id]


async def test_analytics_summarizes_resolution_time(service, employee, admin, manager, clock):
    blocker = await raise_one(service, employee, BlockerSeverity.HIGH, BlockerCategory.RESOURCE)
    await raise_one(service, employee, BlockerSeverity.LOW)
    clock.advance(hours=3)
    await service.resolve(blocker.id, manager, RESOLUTION)

    result = await service.analytics(admin)
    stats = result["stats"]

    assert stats["total"] == 2
    assert stats["resolved"] == 1
    assert stats["by_severity"]["high"] == 1
    assert stats["by_category"]["resource"] == 1
    assert stats["avg_resolution_time_hours"] == 3.0
    assert stats["by_department"] == [{"department": "Engineering", "count": 2}]

    with pytest.raises(ForbiddenError):
        await service.analytics(manager)


async def test_similar_resolved_matches_category(service, employee, manager):
    past = await raise_one(service, employee, category=BlockerCategory.RESOURCE)
    await service.resolve(past.id, manager, RESOLUTION)
    other = await raise_one(service, employee, category=BlockerCategory.EXTERNAL)
    await service.resolve(other.id, manager, RESOLUTION)

    current = await raise_one(service, employee, category=BlockerCategory.RESOURCE)
    similar = await service.similar_resolved(current)
    assert [b.id for b in similar] == [past.id]
