"""Shared test fixtures for FeedRelay tests."""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from feedrelay.database import Base
from feedrelay.models import message as _message_model  # noqa: F401


@pytest_asyncio.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def eventually():
    """Poll an async-world condition until it holds or the timeout expires."""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.01):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait


@pytest.fixture
def make_message():
    """Factory for canonical messages with overridable fields."""
    from feedrelay.core.message import Message

    def _make(msg_id: str, platform: str = "telegram", source_id: str = "tg-1", content: str = "hi") -> Message:
        return Message(
            id=msg_id,
            platform=platform,
            source_id=source_id,
            channel_id="chan",
            author_id="42",
            content=content,
            created_at="2026-01-01T00:00:00.000Z",
            raw={"id": msg_id},
        )

    return _make
