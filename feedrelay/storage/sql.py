"""SQL storage sink: persists every processed message through SQLAlchemy."""

from __future__ import annotations

import json
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedrelay.core.message import Message
from feedrelay.models.message import StoredMessage

logger = logging.getLogger("feedrelay.storage.sql")


class SqlMessageStore:
    """Pipeline handler writing messages to the ``messages`` table.

    The in-memory dedup cache does not survive restarts, so a redelivered
    message can reach this sink twice; the unique key turns the second insert
    into a no-op.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def __call__(self, msg: Message) -> None:
        async with self._session_factory() as session:
            session.add(
                StoredMessage(
                    message_id=msg.id,
                    platform=msg.platform,
                    source_id=msg.source_id,
                    channel_id=msg.channel_id,
                    author_id=msg.author_id,
                    content=msg.content,
                    created_at=msg.created_at,
                    raw_json=json.dumps(msg.raw, default=str) if msg.raw is not None else None,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(f"Message {msg.dedup_key} already stored; skipping")
