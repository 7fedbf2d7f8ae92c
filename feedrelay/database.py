"""Async SQLAlchemy database engine and session management."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from feedrelay.config import settings

# Detect database backend and configure accordingly
_is_postgres = "postgresql" in settings.database_url

_engine_kwargs: dict = {"echo": False}
if _is_postgres:
    # PostgreSQL connection pool settings
    _engine_kwargs.update({
        "pool_size": 5,
        "max_overflow": 10,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_async_engine(settings.database_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
logger = logging.getLogger("feedrelay.database")


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables when AUTO_CREATE_SCHEMA is enabled."""
    if not settings.auto_create_schema:
        logger.info("Skipping Base.metadata.create_all (AUTO_CREATE_SCHEMA=false)")
        return

    # Ensure model modules are imported so SQLAlchemy metadata is populated.
    from feedrelay.models import message  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncSession:  # type: ignore[misc]
    """Dependency yielding an async DB session."""
    async with async_session() as session:
        yield session
