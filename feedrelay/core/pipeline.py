"""Message pipeline: dedup, filters, then handlers in registration order.

The pipeline enforces a strict order per message:
1) Dedup on ``platform:source_id:id`` (in-memory, bounded, FIFO eviction)
2) Filters in registration order; the first rejection drops the message
3) Handlers in registration order, each awaited before the next

Handler exceptions are not caught here. A failing handler aborts the remaining
handlers for that message and propagates to whoever called ``process``.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Optional, Union

from feedrelay.core.message import Message
from feedrelay.observability.metrics import InMemoryMetrics

logger = logging.getLogger("feedrelay.pipeline")

MessageHandler = Callable[[Message], Union[Awaitable[None], None]]
MessageFilter = Callable[[Message], bool]


class Pipeline:
    """Accepts messages, drops already-seen ones, filters, and fans out to handlers."""

    def __init__(self, dedup_limit: int = 10000, metrics: Optional[InMemoryMetrics] = None) -> None:
        if dedup_limit < 1:
            raise ValueError(f"dedup_limit must be >= 1, got {dedup_limit}")
        self._handlers: list[MessageHandler] = []
        self._filters: list[MessageFilter] = []
        self._dedup: OrderedDict[str, float] = OrderedDict()
        self._dedup_limit = dedup_limit
        self._metrics = metrics

    @property
    def dedup_limit(self) -> int:
        return self._dedup_limit

    @property
    def dedup_size(self) -> int:
        return len(self._dedup)

    def add_handler(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def add_filter(self, message_filter: MessageFilter) -> None:
        self._filters.append(message_filter)

    async def process(self, msg: Message) -> None:
        if self._is_duplicate(msg):
            logger.debug(f"Duplicate dropped: {msg.dedup_key}")
            self._observe(msg, "duplicate")
            return

        for message_filter in self._filters:
            if not message_filter(msg):
                self._observe(msg, "filtered")
                return

        self._observe(msg, "forwarded")
        for handler in self._handlers:
            result = handler(msg)
            if inspect.isawaitable(result):
                await result

    def _is_duplicate(self, msg: Message) -> bool:
        # No suspension point between check and insert: atomic on the event loop.
        key = msg.dedup_key
        if key in self._dedup:
            return True

        self._dedup[key] = time.time()

        if len(self._dedup) > self._dedup_limit:
            # Oldest-inserted first; the key just added is always kept.
            target = max(self._dedup_limit // 2, 1)
            evicted = 0
            while len(self._dedup) > target:
                self._dedup.popitem(last=False)
                evicted += 1
            logger.debug(f"Dedup cache pruned {evicted} entries (limit={self._dedup_limit})")

        return False

    def _observe(self, msg: Message, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.observe_message(msg.platform, outcome)
