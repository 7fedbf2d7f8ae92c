"""Logging storage sink: writes one line per processed message."""

from __future__ import annotations

import logging

from feedrelay.core.message import Message

logger = logging.getLogger("feedrelay.storage")


async def console_storage(msg: Message) -> None:
    logger.info(f"[{msg.platform}:{msg.source_id}] {msg.channel_id} {msg.id}: {msg.content}")
