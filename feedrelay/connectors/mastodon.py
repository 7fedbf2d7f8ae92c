"""Mastodon connector: polls a timeline with a since_id cursor or receives webhook pushes."""

from __future__ import annotations

import html
import re
from typing import Any, Mapping, Optional

import httpx

from feedrelay.config import ConnectorConfig, Timeline
from feedrelay.connectors.base import BaseConnector, Capability, WebhookCapable
from feedrelay.core.ingest import PollingIngest
from feedrelay.core.message import Message
from feedrelay.utils.time import utc_now_iso

SECRET_HEADER = "x-webhook-secret"
PAGE_SIZE = 20

_TAG_RE = re.compile(r"<[^>]*>")

# timeline -> (path, extra query params)
TIMELINE_ENDPOINTS: dict[str, tuple[str, list[tuple[str, str]]]] = {
    "home": ("/api/v1/timelines/home", []),
    "public": ("/api/v1/timelines/public", []),
    "public:local": ("/api/v1/timelines/public", [("local", "true")]),
    "mentions": ("/api/v1/notifications", [("types[]", "mention")]),
}


def strip_tags(value: str) -> str:
    """Reduce status HTML to plain text."""
    return html.unescape(_TAG_RE.sub("", value)).strip()


def max_id(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    """Return the larger of two snowflake ids.

    Ids are compared as integers so "11" beats "9"; when either side is not
    numeric the comparison falls back to plain string ordering.
    """
    if not candidate:
        return current
    if not current:
        return candidate
    try:
        return candidate if int(candidate) > int(current) else current
    except ValueError:
        return candidate if candidate > current else current


class MastodonConnector(BaseConnector):
    """Fetches statuses from a Mastodon instance.

    Uses a ``since_id`` cursor so each round only returns items newer than the
    last one seen. For the ``mentions`` timeline the notifications endpoint is
    polled and only ``mention`` notifications (which carry a nested status)
    are normalized.
    """

    DEFAULT_INTERVAL_MS = 7000

    def __init__(
        self,
        connector_id: str,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeline: Timeline = "mentions",
        poll_interval_ms: Optional[int] = None,
        webhook_enabled: bool = False,
        webhook_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__("mastodon", connector_id)
        self.interval_ms = poll_interval_ms if poll_interval_ms is not None else self.DEFAULT_INTERVAL_MS
        self.base_url = base_url.rstrip("/") if base_url else None
        self.access_token = access_token
        self.timeline = timeline
        self.webhook_enabled = webhook_enabled
        self.webhook_secret = webhook_secret
        self._transport = transport
        self._since_id: Optional[str] = None
        self._poller: Optional[PollingIngest] = None

    @classmethod
    def from_config(
        cls,
        config: ConnectorConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MastodonConnector":
        return cls(
            connector_id=config.id,
            base_url=config.base_url,
            access_token=config.access_token,
            timeline=config.timeline,
            poll_interval_ms=config.poll_interval_ms,
            webhook_enabled=config.webhook_enabled,
            webhook_secret=config.webhook_secret,
            transport=transport,
        )

    @property
    def since_id(self) -> Optional[str]:
        return self._since_id

    # ── Lifecycle ────────────────────────────────────────────────
    async def start(self) -> None:
        if self.running:
            return
        self.running = True

        if not self.base_url or not self.access_token:
            self.logger.warning(f"[mastodon:{self.id}] base_url or access_token missing; skipping start")
            return

        if self.webhook_enabled:
            self.logger.info(f"[mastodon:{self.id}] started in webhook mode")
            return

        if self._poller is None:
            self._poller = PollingIngest(
                interval_ms=self.interval_ms,
                poll=self.poll_once,
                emit=self.emit,
                name=f"mastodon:{self.id}",
            )
        self._poller.start()

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._poller:
            await self._poller.stop()

    # ── Polling ──────────────────────────────────────────────────
    async def poll_once(self) -> Optional[list[Message]]:
        """Fetch one page newer than ``since_id`` and advance the cursor."""
        if not self.base_url or not self.access_token:
            return None

        path, extra_params = TIMELINE_ENDPOINTS.get(self.timeline, TIMELINE_ENDPOINTS["mentions"])
        params: list[tuple[str, str]] = [*extra_params, ("limit", str(PAGE_SIZE))]
        if self._since_id:
            params.append(("since_id", self._since_id))

        async with httpx.AsyncClient(timeout=20, transport=self._transport) as client:
            resp = await client.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"Authorization": f"Bearer {self.access_token}"},
            )

        if not resp.is_success:
            self.logger.warning(f"[mastodon:{self.id}] {path} returned HTTP {resp.status_code}")
            return None

        data = resp.json()
        if not isinstance(data, list) or not data:
            return None

        messages: list[Message] = []
        newest = self._since_id

        for item in data:
            if not isinstance(item, dict) or item.get("id") is None:
                continue
            # Advance past every item, including ones that fail to normalize.
            newest = max_id(newest, _id_str(item.get("id")))

            status = self._status_of(item)
            if status is None:
                continue
            try:
                messages.append(self.normalize_status(status))
            except Exception as exc:
                self.logger.warning(f"[mastodon:{self.id}] dropping item {item.get('id')}: {exc}")

        if newest:
            self._since_id = newest
        return messages or None

    def _status_of(self, item: dict) -> Optional[dict]:
        """The status carried by a timeline item; mention notifications wrap it."""
        if self.timeline != "mentions":
            return item
        status = item.get("status")
        if item.get("type") != "mention" or not isinstance(status, dict):
            return None
        return status

    # ── Webhook ──────────────────────────────────────────────────
    def capability(self) -> Capability:
        return WebhookCapable(handler=self.handle_webhook)

    async def handle_webhook(self, payload: Any, headers: Mapping[str, str]) -> Optional[Message]:
        if not self.header_matches(headers, SECRET_HEADER, self.webhook_secret):
            self.logger.debug(f"[mastodon:{self.id}] webhook secret mismatch; ignoring")
            return None

        if not isinstance(payload, dict) or not payload.get("id"):
            return None
        return self.normalize_status(payload)

    # ── Normalization ────────────────────────────────────────────
    def normalize_status(self, status: dict) -> Message:
        account = status.get("account")
        author = account.get("id") if isinstance(account, dict) else None
        visibility = status.get("visibility")
        content = status.get("content")
        created_at = status.get("created_at")
        return Message(
            id=str(status.get("id")),
            platform="mastodon",
            source_id=self.id,
            channel_id=str(visibility if visibility is not None else self.timeline),
            author_id=str(author if author is not None else "unknown"),
            content=strip_tags(content) if isinstance(content, str) else "",
            created_at=created_at if isinstance(created_at, str) and created_at else utc_now_iso(),
            raw=status,
        )


def _id_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
