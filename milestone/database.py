from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from .config import settings


def build_engine(database_url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine for the given URL"""
    return create_async_engine(database_url, echo=echo, future=True, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


# Create async engine
engine = build_engine(settings.database_url, echo=settings.database_echo)

# Create session factory
async_session = build_session_factory(engine)


# Dependency to get database session
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
