import os

# Settings are resolved at import time, so the environment comes first
os.environ["ENVIRONMENT"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from milestone.core.auth import create_access_token, get_clock, hash_password
from milestone.database import build_session_factory, get_db
from milestone.models import Base, User
from milestone.models.enums import Role
from milestone.services.ai_advisor import AIAdvisor
from milestone.services.llm_provider import LLMError
from milestone.services.notification_service import NotificationService
from milestone.services.task_queue import OutboundTaskQueue, TaskContext

# Wednesday, mid-morning UTC (settings.timezone defaults to UTC)
FIXED_NOW = datetime(2026, 3, 4, 9, 0, tzinfo=timezone.utc)

GOAL = "Ship the attendance export with CSV download and the matching unit tests for edge cases"
LONG_REASON = "The staging environment was down for most of the afternoon so the export could not be verified end to end."
ACHIEVEMENT = (
    "Merged the CSV export endpoint, added unit tests for empty months and "
    "timezone edges, and deployed it to staging for the product review."
)
BLOCKER_DESCRIPTION = (
    "Every deploy to staging fails during the migration step with a lock timeout, "
    "so none of the new endpoints can be verified before the release cut tomorrow."
)


class FrozenClock:
    """Callable clock pinned to a moment; tests move it explicitly"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


class FakeTransport:
    """Collects posted messages.

    ``fail_times`` makes the next N posts raise; ``fail_on`` does the same
    for one channel only.
    """

    def __init__(self, fail_times: int = 0, fail_on: Optional[Dict[str, int]] = None):
        self.messages: List[Dict[str, Any]] = []
        self.fail_times = fail_times
        self.fail_on: Dict[str, int] = dict(fail_on or {})

    async def post_message(self, channel: str, text: str, blocks: Optional[list] = None) -> str:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("channel_not_found")
        if self.fail_on.get(channel, 0) > 0:
            self.fail_on[channel] -= 1
            raise RuntimeError("channel_not_found")
        self.messages.append({"channel": channel, "text": text, "blocks": blocks})
        return str(len(self.messages))

    def channels(self) -> List[str]:
        return [m["channel"] for m in self.messages]

    async def disconnect(self) -> None:
        pass


class FakeLLMProvider:
    """Returns canned content, or raises LLMError when ``error`` is set"""

    is_configured = True

    def __init__(self, content: str = "", error: Optional[str] = None):
        self.content = content
        self.error = error
        self.prompts: List[str] = []

    async def generate_completion(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        self.prompts.append(prompt)
        if self.error:
            raise LLMError(self.error)
        return {"content": self.content, "tokens_used": 0, "model": "fake", "provider": "fake"}


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def file_session_factory(tmp_path):
    # Separate connections per session, so concurrent work really interleaves
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'milestone.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def make_user(session, email: str, role: Role = Role.EMPLOYEE, department: str = "Engineering",
                    is_active: bool = True, password: str = "Password123") -> User:
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=email.split("@")[0].title(),
        role=role.value,
        department=department,
        is_active=is_active
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
async def employee(db):
    return await make_user(db, "emma@example.com")


@pytest.fixture
async def other_employee(db):
    return await make_user(db, "frank@example.com", department="Design")


@pytest.fixture
async def manager(db):
    return await make_user(db, "bob@example.com", role=Role.MANAGER)


@pytest.fixture
async def admin(db):
    return await make_user(db, "alice@example.com", role=Role.ADMIN, department="Management")


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def notifier(session_factory, transport):
    return NotificationService(
        session_factory,
        transport=transport,
        manager_channel="#managers",
        admin_channel="#admins",
        frontend_url="http://frontend.test"
    )


@pytest.fixture
def advisor():
    # Disabled: every call returns its deterministic fallback
    return AIAdvisor(provider=FakeLLMProvider(), enabled=False)


@pytest.fixture
def task_queue(session_factory, advisor, notifier):
    return OutboundTaskQueue(
        TaskContext(session_factory, advisor, notifier),
        workers=1,
        max_attempts=3,
        base_delay=0
    )


@pytest.fixture
async def client(session_factory, clock, task_queue, advisor):
    from milestone.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.state.task_queue = task_queue
    app.state.advisor = advisor

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
    app.state.task_queue = None
    app.state.advisor = None


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
