import asyncio

from sqlalchemy import select

from conftest import make_user
from milestone.models import Standup
from milestone.services.standup_service import StandupService


async def test_concurrent_creates_get_contiguous_sequences(file_session_factory, clock):
    async with file_session_factory() as session:
        user = await make_user(session, "emma@example.com")

    async def create_one():
        async with file_session_factory() as session:
            standup = await StandupService(session, clock=clock).create(user)
            return standup.sequence

    sequences = await asyncio.gather(*(create_one() for _ in range(4)))

    assert sorted(sequences) == [1, 2, 3, 4]
    async with file_session_factory() as session:
        stored = (await session.execute(select(Standup.sequence).order_by(Standup.sequence))).scalars().all()
    assert stored == [1, 2, 3, 4]
