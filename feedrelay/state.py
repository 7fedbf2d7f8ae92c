"""Process-scoped relay state shared by the HTTP layer.

``RelayState.init`` is called once from the application lifespan and the
instance is stored on ``app.state.relay``; ``clear`` runs at shutdown. Routers
get it through the ``get_state`` dependency instead of a module global.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import Request

from feedrelay.api.websocket import ConnectionManager
from feedrelay.config import Settings
from feedrelay.observability.metrics import InMemoryMetrics
from feedrelay.runner import Runner

logger = logging.getLogger("feedrelay.state")


class RelayState:
    """Owns the runner, the broadcast subscriber set and the running flag."""

    def __init__(self, runner: Runner, broadcaster: Optional[ConnectionManager] = None) -> None:
        self.runner = runner
        self.broadcaster = broadcaster or ConnectionManager()
        self.running = False
        self._lock = asyncio.Lock()
        self.runner.add_handler(self.broadcaster.broadcast_message)

    @classmethod
    def init(cls, settings: Settings, metrics: Optional[InMemoryMetrics] = None) -> "RelayState":
        return cls(Runner.from_settings(settings, metrics=metrics))

    async def start(self) -> bool:
        async with self._lock:
            if not self.running:
                await self.runner.start()
                self.running = True
                logger.info("Connectors started")
        return self.running

    async def stop(self) -> bool:
        async with self._lock:
            if self.running:
                await self.runner.stop()
                self.running = False
                logger.info("Connectors stopped")
        return self.running

    async def clear(self) -> None:
        """Shutdown: stop connectors, close dispatch workers, drop subscribers."""
        await self.stop()
        await self.runner.close()
        self.broadcaster.clear()


def get_state(request: Request) -> RelayState:
    """Dependency returning the process-scoped relay state."""
    return request.app.state.relay
