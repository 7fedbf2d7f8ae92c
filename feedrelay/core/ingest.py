"""Polling ingest primitive: runs a fetch function on a fixed interval."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from feedrelay.core.message import Message

logger = logging.getLogger("feedrelay.ingest")

PollingResult = Union[Message, list[Message], None]
PollingFn = Callable[[], Union[Awaitable[PollingResult], PollingResult]]
EmitFn = Callable[[Message], None]


class PollingIngest:
    """Asyncio-based poller.

    Each round waits ``interval_ms``, calls ``poll`` and forwards every returned
    message to ``emit`` in order. Rounds never overlap. A failing poll is logged
    and the next round runs as usual; only ``stop()`` ends the loop.
    """

    def __init__(
        self,
        interval_ms: int,
        poll: PollingFn,
        emit: EmitFn,
        name: str = "poller",
    ) -> None:
        self.interval = max(interval_ms, 0) / 1000
        self._poll = poll
        self._emit = emit
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=f"poll:{self._name}")
        logger.info(f"Poller {self._name} started (interval={self.interval}s)")

    async def stop(self) -> None:
        """Stop polling and cancel any in-flight poll; returns once the loop has exited."""
        if not self._running:
            return
        self._running = False
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"Poller {self._name} stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            if not self._running:
                break
            try:
                result = self._poll()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.warning(f"Poller {self._name} round failed: {e}")
                continue

            if not result:
                continue

            messages = result if isinstance(result, list) else [result]
            for msg in messages:
                self._emit(msg)
