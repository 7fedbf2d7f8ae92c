"""Runner: owns the connectors and the pipeline, and wires one into the other."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

import httpx

from feedrelay.config import ConnectorConfig, Settings, load_relay_config
from feedrelay.connectors.base import BaseConnector
from feedrelay.connectors.registry import ConnectorRegistry, default_registry
from feedrelay.core.message import Message
from feedrelay.core.pipeline import MessageFilter, MessageHandler, Pipeline
from feedrelay.observability.metrics import InMemoryMetrics
from feedrelay.storage.console import console_storage

logger = logging.getLogger("feedrelay.runner")


class Runner:
    """Orchestrates connector lifecycle and message dispatch.

    Every connector's emitted messages are routed through ``process_message``,
    which queues them per source and returns immediately. One worker task per
    source drains its queue into ``Pipeline.process``, so messages from one
    source reach the handlers in emission order while different sources make
    independent progress. A failing pipeline call is logged and the worker
    moves on to the next message.
    """

    def __init__(
        self,
        connector_configs: Iterable[ConnectorConfig],
        dedup_limit: int = 10000,
        registry: Optional[ConnectorRegistry] = None,
        metrics: Optional[InMemoryMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.pipeline = Pipeline(dedup_limit=dedup_limit, metrics=metrics)
        self.metrics = metrics
        self.connectors: list[BaseConnector] = []
        self._queues: dict[str, asyncio.Queue[Message]] = {}
        self._workers: dict[str, asyncio.Task] = {}

        registry = registry or default_registry()
        seen_ids: set[str] = set()
        for config in connector_configs:
            if config.id in seen_ids:
                logger.warning(f"Duplicate connector id '{config.id}'; only the first is addressable")
            seen_ids.add(config.id)
            connector = registry.build_connector(config, transport)
            if connector is not None:
                self.connectors.append(connector)

        for connector in self.connectors:
            connector.on_message(self.process_message)

    @classmethod
    def from_settings(cls, settings: Settings, metrics: Optional[InMemoryMetrics] = None) -> "Runner":
        """Build a runner from settings and install the storage sinks."""
        relay_config = load_relay_config(settings)
        runner = cls(
            relay_config.connectors,
            dedup_limit=relay_config.pipeline.dedup_limit,
            metrics=metrics,
        )
        runner.add_handler(console_storage)

        if settings.persist_messages:
            from feedrelay.database import async_session
            from feedrelay.storage.sql import SqlMessageStore

            runner.add_handler(SqlMessageStore(async_session))

        logger.info(
            f"Runner built with {len(runner.connectors)} connector(s): "
            f"{', '.join(c.id for c in runner.connectors) or 'none'}"
        )
        return runner

    # ── Lifecycle ────────────────────────────────────────────────
    async def start(self) -> None:
        await self._run_all("start")

    async def stop(self) -> None:
        await self._run_all("stop")

    async def _run_all(self, action: str) -> None:
        # Independent tasks: one slow connector must not hold up the others.
        results = await asyncio.gather(
            *(getattr(connector, action)() for connector in self.connectors),
            return_exceptions=True,
        )
        for connector, result in zip(self.connectors, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Connector {connector.id} failed to {action}: {result}",
                    extra={"connector_id": connector.id, "platform": connector.platform},
                )

    # ── Status ───────────────────────────────────────────────────
    def status(self) -> list[dict]:
        return [connector.status().to_dict() for connector in self.connectors]

    def get_connector(self, connector_id: str) -> Optional[BaseConnector]:
        for connector in self.connectors:
            if connector.id == connector_id:
                return connector
        return None

    # ── Dispatch ─────────────────────────────────────────────────
    def add_handler(self, handler: MessageHandler) -> None:
        self.pipeline.add_handler(handler)

    def add_filter(self, message_filter: MessageFilter) -> None:
        self.pipeline.add_filter(message_filter)

    def process_message(self, msg: Message) -> None:
        """Submit a message to the pipeline without waiting for it."""
        queue = self._queues.get(msg.source_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[msg.source_id] = queue
            self._workers[msg.source_id] = asyncio.create_task(
                self._dispatch(msg.source_id, queue),
                name=f"dispatch:{msg.source_id}",
            )
        queue.put_nowait(msg)

    async def _dispatch(self, source_id: str, queue: asyncio.Queue[Message]) -> None:
        while True:
            msg = await queue.get()
            try:
                await self.pipeline.process(msg)
            except Exception:
                logger.exception(
                    f"Pipeline failed for {msg.dedup_key}",
                    extra={"connector_id": source_id, "platform": msg.platform},
                )
                if self.metrics is not None:
                    self.metrics.observe_dispatch_error(source_id)
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every submitted message has been through the pipeline."""
        await asyncio.gather(*(queue.join() for queue in list(self._queues.values())))

    async def close(self) -> None:
        """Cancel the dispatch workers. Queued messages that were not processed are dropped."""
        workers = list(self._workers.values())
        self._workers.clear()
        self._queues.clear()
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
