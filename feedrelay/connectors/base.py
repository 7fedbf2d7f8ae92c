"""Base interfaces for platform connectors."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Mapping, Optional, Union

from feedrelay.core.message import Message
from feedrelay.utils.time import utc_now_iso

logger = logging.getLogger("feedrelay.connectors")

MessageCallback = Callable[[Message], None]
WebhookResult = Union[Message, list[Message], None]
WebhookHandler = Callable[[Any, Mapping[str, str]], Union[Awaitable[WebhookResult], WebhookResult]]


@dataclass(frozen=True)
class ConnectorStatus:
    running: bool
    platform: str
    id: str
    last_message_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"running": self.running, "platform": self.platform, "id": self.id}
        if self.last_message_at is not None:
            data["last_message_at"] = self.last_message_at
        return data


# ─── Capabilities ────────────────────────────────────────────────


@dataclass(frozen=True)
class WebhookCapable:
    """The connector accepts pushed events through ``handler(payload, headers)``."""

    handler: WebhookHandler
    kind: Literal["webhook"] = "webhook"

    async def deliver(self, payload: Any, headers: Mapping[str, str]) -> list[Message]:
        """Run the handler and flatten its result into a list of messages."""
        result = self.handler(payload, headers)
        if inspect.isawaitable(result):
            result = await result
        if not result:
            return []
        return list(result) if isinstance(result, list) else [result]


@dataclass(frozen=True)
class PollOnly:
    kind: Literal["poll_only"] = "poll_only"


Capability = Union[WebhookCapable, PollOnly]


# ─── Connector ───────────────────────────────────────────────────


class BaseConnector(ABC):
    """Abstract base class for one configured platform source.

    Lifecycle::

        idle --start()--> running(polling | webhook | inert)
        running --stop()--> idle

    Both transitions are idempotent and a stopped connector may be started again.
    Missing credentials never raise: the connector logs a warning and stays
    running but inert.
    """

    def __init__(self, platform: str, connector_id: str) -> None:
        self.platform = platform
        self.id = connector_id
        self.running = False
        self._callback: Optional[MessageCallback] = None
        self._last_message_at: Optional[str] = None
        self.logger = logging.getLogger(f"feedrelay.connectors.{platform}")

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    def on_message(self, cb: MessageCallback) -> None:
        """Register the single emit callback, replacing any previous one."""
        self._callback = cb

    def status(self) -> ConnectorStatus:
        return ConnectorStatus(
            running=self.running,
            platform=self.platform,
            id=self.id,
            last_message_at=self._last_message_at,
        )

    def capability(self) -> Capability:
        return PollOnly()

    def emit(self, msg: Message) -> None:
        self._last_message_at = utc_now_iso()
        if self._callback is None:
            return
        try:
            self._callback(msg)
        except Exception:
            # A failing consumer costs this message only, never the ingestion loop.
            self.logger.exception(
                f"Emit callback failed for {msg.dedup_key}",
                extra={"connector_id": self.id, "platform": self.platform},
            )

    @staticmethod
    def header_matches(headers: Mapping[str, str], name: str, secret: Optional[str]) -> bool:
        """Shared-secret check; always passes when no secret is configured."""
        if not secret:
            return True
        return headers.get(name) == secret
