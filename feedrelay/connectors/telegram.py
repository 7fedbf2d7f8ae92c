"""Telegram bot connector: long-polls getUpdates or receives webhook pushes."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Mapping, Optional

import httpx

from feedrelay.config import ConnectorConfig
from feedrelay.connectors.base import BaseConnector, Capability, WebhookCapable
from feedrelay.core.message import Message
from feedrelay.utils.time import from_unix, utc_now_iso

SECRET_HEADER = "x-telegram-bot-api-secret-token"

# Update kinds carrying a message, in lookup order.
POLL_UPDATE_KEYS = ("message", "channel_post", "edited_message", "edited_channel_post")
WEBHOOK_UPDATE_KEYS = ("message", "channel_post")


class TelegramConnector(BaseConnector):
    """Ingests bot updates from the Telegram Bot API.

    Polling mode keeps an ``offset`` cursor and issues long-poll ``getUpdates``
    calls bounded by ``poll_timeout_sec``. Failed rounds (non-2xx, network
    error, malformed body) sleep ``poll_interval_ms`` and try again.

    Webhook mode optionally registers ``webhook_url`` with Telegram at start,
    passing the shared secret so deliveries can be authenticated.
    """

    DEFAULT_INTERVAL_MS = 5000

    def __init__(
        self,
        connector_id: str,
        bot_token: Optional[str] = None,
        poll_interval_ms: Optional[int] = None,
        webhook_enabled: bool = False,
        webhook_secret: Optional[str] = None,
        webhook_url: Optional[str] = None,
        allowed_updates: Optional[list[str]] = None,
        poll_timeout_sec: int = 25,
        api_base_url: str = "https://api.telegram.org",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__("telegram", connector_id)
        self.interval_ms = poll_interval_ms if poll_interval_ms is not None else self.DEFAULT_INTERVAL_MS
        self.bot_token = bot_token
        self.webhook_enabled = webhook_enabled
        self.webhook_secret = webhook_secret
        self.webhook_url = webhook_url
        self.allowed_updates = allowed_updates
        self.poll_timeout_sec = poll_timeout_sec
        self.api_base_url = api_base_url.rstrip("/")
        self._transport = transport
        self._offset = 0
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: ConnectorConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TelegramConnector":
        return cls(
            connector_id=config.id,
            bot_token=config.bot_token,
            poll_interval_ms=config.poll_interval_ms,
            webhook_enabled=config.webhook_enabled,
            webhook_secret=config.webhook_secret,
            webhook_url=config.webhook_url,
            allowed_updates=config.allowed_updates,
            poll_timeout_sec=config.poll_timeout_sec,
            api_base_url=config.api_base_url,
            transport=transport,
        )

    @property
    def offset(self) -> int:
        return self._offset

    def _method_url(self, method: str) -> str:
        return f"{self.api_base_url}/bot{self.bot_token}/{method}"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    # ── Lifecycle ────────────────────────────────────────────────
    async def start(self) -> None:
        if self.running:
            return
        self.running = True

        if not self.bot_token:
            self.logger.warning(f"[telegram:{self.id}] bot_token missing; skipping start")
            return

        if self.webhook_enabled:
            if self.webhook_url:
                await self._set_webhook(self.webhook_url)
            self.logger.info(f"[telegram:{self.id}] started in webhook mode")
            return

        self._task = asyncio.create_task(self._poll_loop(), name=f"telegram:{self.id}")
        self.logger.info(f"[telegram:{self.id}] started long-polling (timeout={self.poll_timeout_sec}s)")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        task, self._task = self._task, None
        if task:
            # Cancelling the task aborts the in-flight getUpdates request too.
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.logger.info(f"[telegram:{self.id}] stopped")

    # ── Polling ──────────────────────────────────────────────────
    async def _poll_loop(self) -> None:
        retry_delay = self.interval_ms / 1000
        async with self._client(timeout=self.poll_timeout_sec + 10) as client:
            while self.running:
                try:
                    updates = await self._get_updates(client)
                except (httpx.HTTPError, ValueError) as exc:
                    self.logger.warning(f"[telegram:{self.id}] getUpdates failed: {exc}")
                    await asyncio.sleep(retry_delay)
                    continue

                if updates is None:
                    await asyncio.sleep(retry_delay)
                    continue

                for update in updates:
                    self._handle_update(update)

    async def _get_updates(self, client: httpx.AsyncClient) -> Optional[list]:
        """Run one long-poll round. Returns the update list, or None on a rejected response."""
        params: dict[str, str] = {
            "timeout": str(self.poll_timeout_sec),
            "offset": str(self._offset),
        }
        if self.allowed_updates:
            params["allowed_updates"] = json.dumps(self.allowed_updates)

        resp = await client.get(self._method_url("getUpdates"), params=params)
        if not resp.is_success:
            self.logger.warning(f"[telegram:{self.id}] getUpdates returned HTTP {resp.status_code}")
            return None

        data = resp.json()
        if not isinstance(data, dict) or not data.get("ok") or not isinstance(data.get("result"), list):
            self.logger.warning(f"[telegram:{self.id}] getUpdates returned an unexpected body")
            return None
        return data["result"]

    def _handle_update(self, update: Any) -> None:
        if not isinstance(update, dict):
            return

        update_id = update.get("update_id")
        if isinstance(update_id, int) and not isinstance(update_id, bool):
            self._offset = max(self._offset, update_id + 1)

        msg = _first_present(update, POLL_UPDATE_KEYS)
        if msg is None:
            return
        try:
            normalized = self.normalize_message(msg)
        except Exception as exc:
            # The offset is already past this update, so it is skipped, not retried.
            self.logger.warning(f"[telegram:{self.id}] dropping update {update_id}: {exc}")
            return
        self.emit(normalized)

    async def _set_webhook(self, url: str) -> None:
        data: dict[str, str] = {"url": url}
        if self.webhook_secret:
            data["secret_token"] = self.webhook_secret
        if self.allowed_updates:
            data["allowed_updates"] = json.dumps(self.allowed_updates)

        try:
            async with self._client(timeout=15) as client:
                resp = await client.post(self._method_url("setWebhook"), data=data)
            if not resp.is_success:
                self.logger.warning(f"[telegram:{self.id}] setWebhook returned HTTP {resp.status_code}")
        except httpx.HTTPError as exc:
            self.logger.warning(f"[telegram:{self.id}] setWebhook failed: {exc}")

    # ── Webhook ──────────────────────────────────────────────────
    def capability(self) -> Capability:
        return WebhookCapable(handler=self.handle_webhook)

    async def handle_webhook(self, payload: Any, headers: Mapping[str, str]) -> Optional[Message]:
        if not self.header_matches(headers, SECRET_HEADER, self.webhook_secret):
            self.logger.debug(f"[telegram:{self.id}] webhook secret mismatch; ignoring")
            return None

        if not isinstance(payload, dict):
            return None

        msg = _first_present(payload, WEBHOOK_UPDATE_KEYS)
        if msg is None:
            return None
        return self.normalize_message(msg)

    # ── Normalization ────────────────────────────────────────────
    def normalize_message(self, msg: dict) -> Message:
        chat = _as_dict(msg.get("chat"))
        sender = _as_dict(msg.get("from"))
        sender_chat = _as_dict(msg.get("sender_chat"))

        message_id = _coalesce(msg.get("message_id"), msg.get("message_thread_id"), int(time.time() * 1000))
        created_at = _created_at(msg.get("date"))

        return Message(
            id=str(message_id),
            platform="telegram",
            source_id=self.id,
            channel_id=str(_coalesce(chat.get("id"), "unknown")),
            author_id=str(_coalesce(sender.get("id"), sender_chat.get("id"), "unknown")),
            content=_first_text(msg.get("text"), msg.get("caption")),
            created_at=created_at,
            raw=msg,
        )


def _first_present(update: dict, keys: tuple[str, ...]) -> Optional[dict]:
    for key in keys:
        value = update.get(key)
        if isinstance(value, dict):
            return value
    return None


def _coalesce(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first_text(*values: Any) -> str:
    for value in values:
        if isinstance(value, str):
            return value
    return ""


def _created_at(date: Any) -> str:
    if isinstance(date, bool) or not isinstance(date, (int, float)) or not date:
        return utc_now_iso()
    try:
        return from_unix(date)
    except (OverflowError, OSError, ValueError):
        return utc_now_iso()
