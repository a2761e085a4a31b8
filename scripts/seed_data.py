#!/usr/bin/env python3
"""
Seed Data Script for Milestone

Creates realistic test data for development:
- 1 Admin, 2 Managers, 6 Employees across 3 departments
- 3 weekdays of standups (goal + submission)
- A handful of blockers in different states
- Attendance rows matching the standups

Usage:
    python scripts/seed_data.py              # Add seed data
    python scripts/seed_data.py --clear      # Clear all data first
"""
import asyncio
import sys
import os
from datetime import time, timedelta
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from milestone.database import async_session, engine
from milestone.models import (
    Attachment,
    Attendance,
    Base,
    Blocker,
    JobRun,
    NotificationLog,
    Standup,
    User,
)
from milestone.models.enums import (
    AttendanceStatus,
    BlockerStatus,
    GoalStatus,
    Role,
    StandupStatus,
)
from milestone.core.auth import hash_password
from milestone.utils.time import hours_between, is_late_submission, local_date, local_moment, utc_now


# ==================== DATA DEFINITIONS ====================

DEFAULT_PASSWORD = "Password123"

USERS_DATA = [
    {"email": "admin@company.com", "name": "Alice Johnson", "role": Role.ADMIN, "department": "Management"},
    {"email": "bob.manager@company.com", "name": "Bob Martinez", "role": Role.MANAGER, "department": "Engineering"},
    {"email": "carol.manager@company.com", "name": "Carol Williams", "role": Role.MANAGER, "department": "Design"},
    {"email": "emma.dev@company.com", "name": "Emma Rodriguez", "role": Role.EMPLOYEE, "department": "Engineering"},
    {"email": "frank.dev@company.com", "name": "Frank Smith", "role": Role.EMPLOYEE, "department": "Engineering"},
    {"email": "grace.dev@company.com", "name": "Grace Lee", "role": Role.EMPLOYEE, "department": "Engineering"},
    {"email": "henry.design@company.com", "name": "Henry Brown", "role": Role.EMPLOYEE, "department": "Design"},
    {"email": "ivy.design@company.com", "name": "Ivy Patel", "role": Role.EMPLOYEE, "department": "Design"},
    {"email": "jack.sales@company.com", "name": "Jack Wilson", "role": Role.EMPLOYEE, "department": "Sales"},
]

GOALS = [
    "Finish the payment retry flow including webhook handling and the unit tests for failed charges",
    "Review the onboarding screens with product and deliver the updated mockups for the signup wizard",
    "Close out the remaining search indexing tickets and document the reindex procedure for the team",
    "Prepare the quarterly pipeline review deck and follow up with the three enterprise leads from last week",
]

BLOCKERS_DATA = [
    {
        "email": "emma.dev@company.com",
        "title": "Staging database is read-only",
        "description": "Since this morning every migration against staging fails with a read-only transaction error, "
                       "so none of the payment changes can be verified before the release cut.",
        "category": "TECHNICAL",
        "severity": "CRITICAL",
        "support_required": "DBA access to staging or someone from infra to check the replica failover",
        "status": BlockerStatus.OPEN,
    },
    {
        "email": "henry.design@company.com",
        "title": "Waiting on brand guidelines",
        "description": "The updated brand guidelines from marketing have not been shared yet and the signup mockups "
                       "depend on the new colour palette and typography decisions they contain.",
        "category": "COMMUNICATION",
        "severity": "MEDIUM",
        "support_required": "Marketing to share the draft guidelines",
        "status": BlockerStatus.IN_PROGRESS,
    },
    {
        "email": "frank.dev@company.com",
        "title": "CI runners out of disk",
        "description": "Build jobs on the shared CI runners fail intermittently with no space left on device errors, "
                       "which blocks merging anything to main until the cache volumes are cleaned up.",
        "category": "RESOURCE",
        "severity": "HIGH",
        "support_required": "Platform team to resize or clean the runner volumes",
        "status": BlockerStatus.RESOLVED,
        "resolution_notes": "Platform team doubled the runner volumes and added a nightly cache cleanup job.",
    },
]


def previous_weekdays(count: int):
    day = local_date(utc_now())
    days = []
    while len(days) < count:
        day -= timedelta(days=1)
        if day.weekday() < 5:
            days.append(day)
    return list(reversed(days))


# ==================== SEED STEPS ====================

async def clear_all_data(session: AsyncSession):
    """Delete all rows, children first"""
    print("\n🧹 Clearing existing data...")
    for model in (Attachment, NotificationLog, JobRun, Blocker, Attendance, Standup, User):
        await session.execute(delete(model))
    await session.commit()
    print("  ✓ Cleared")


async def create_users(session: AsyncSession):
    """Create users, returns a map of email -> User"""
    print("\n👥 Creating users...")
    users_map = {}
    for data in USERS_DATA:
        user = User(
            email=data["email"],
            password_hash=hash_password(DEFAULT_PASSWORD),
            name=data["name"],
            role=data["role"].value,
            department=data["department"],
            is_active=True
        )
        session.add(user)
        users_map[data["email"]] = user
        print(f"  ✓ {data['name']} ({data['role'].value}, {data['department']})")

    await session.commit()
    return users_map


async def create_standups_and_attendance(session: AsyncSession, users_map):
    """A submitted standup and a matching attendance row per employee per day"""
    print("\n📝 Creating standups and attendance...")
    employees = [u for u in users_map.values() if u.role == Role.EMPLOYEE.value]
    days = previous_weekdays(3)

    count = 0
    for day_index, day in enumerate(days):
        for user_index, user in enumerate(employees):
            login = local_moment(day, time(9, user_index * 7 % 60))
            submitted = local_moment(day, time(17 + user_index % 3, 30))
            achieved = (day_index + user_index) % 3 != 0

            session.add(Standup(
                user_id=user.id,
                date=day,
                sequence=1,
                today_goal=GOALS[(day_index + user_index) % len(GOALS)],
                goal_set_time=login + timedelta(minutes=10),
                task_refs=[],
                achievement_title="Payment retries shipped" if achieved else "Partial progress on goal",
                achievement_desc=(
                    "Worked through the planned tasks, paired on the trickiest review comments "
                    "and updated the tickets with the current state."
                ),
                goal_status=GoalStatus.ACHIEVED.value if achieved else GoalStatus.PARTIALLY_ACHIEVED.value,
                completion_percentage=100 if achieved else 60,
                not_achieved_reason=None if achieved else (
                    "Lost most of the afternoon to an unplanned production incident on the billing service."
                ),
                submission_time=submitted,
                is_late_submission=is_late_submission(submitted),
                status=StandupStatus.APPROVED.value if day_index < len(days) - 1 else StandupStatus.SUBMITTED.value
            ))
            session.add(Attendance(
                user_id=user.id,
                date=day,
                login_time=login,
                logout_time=submitted,
                hours_worked=hours_between(login, submitted),
                status=AttendanceStatus.LATE.value if login.minute > 45 else AttendanceStatus.PRESENT.value
            ))
            count += 1

    await session.commit()
    print(f"  ✓ Created {count} standups over {len(days)} days ({days[0]} to {days[-1]})")


async def create_blockers(session: AsyncSession, users_map):
    print("\n🚧 Creating blockers...")
    manager = users_map["bob.manager@company.com"]
    now = utc_now()

    for index, data in enumerate(BLOCKERS_DATA):
        resolved = data["status"] == BlockerStatus.RESOLVED
        blocker = Blocker(
            user_id=users_map[data["email"]].id,
            title=data["title"],
            description=data["description"],
            category=data["category"],
            severity=data["severity"],
            support_required=data["support_required"],
            status=data["status"].value,
            created_at=now - timedelta(days=index + 1),
            resolution_notes=data.get("resolution_notes"),
            resolved_at=now - timedelta(hours=6) if resolved else None,
            resolved_by=manager.id if resolved else None
        )
        session.add(blocker)
        print(f"  ✓ {data['title']} ({data['severity']}, {data['status'].value})")

    await session.commit()


# ==================== MAIN ====================

async def seed_database(clear_first: bool = False):
    """Main seed function"""
    print("=" * 60)
    print("🌱 Milestone - Database Seeding")
    print("=" * 60)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        if clear_first:
            await clear_all_data(session)

        users_map = await create_users(session)
        await create_standups_and_attendance(session, users_map)
        await create_blockers(session, users_map)

    await engine.dispose()

    print("\n" + "=" * 60)
    print("✅ Database seeding complete!")
    print("=" * 60)
    print("\n🔑 Login Credentials:")
    print("  Email: Any from the list above")
    print(f"  Password: {DEFAULT_PASSWORD}")
    print("\n💡 Test Users:")
    print("  Admin: admin@company.com")
    print("  Manager: bob.manager@company.com")
    print("  Employee: emma.dev@company.com")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed Milestone database")
    parser.add_argument("--clear", action="store_true", help="Clear all data before seeding")
    args = parser.parse_args()

    asyncio.run(seed_database(clear_first=args.clear))
