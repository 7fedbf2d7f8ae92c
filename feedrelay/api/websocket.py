"""WebSocket endpoint for real-time message broadcasting."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from feedrelay.core.message import Message

logger = logging.getLogger("feedrelay.websocket")

router = APIRouter(tags=["websocket"])


class ConnectionManager:
    """Tracks live subscribers and pushes every processed message to them.

    Subscribers are added on connect and removed on disconnect or on a failed
    send. Subscribers not in the connected state are skipped, not queued.
    """

    def __init__(self, heartbeat_interval: float = 30) -> None:
        self.connections: set[WebSocket] = set()
        self.heartbeat_interval = heartbeat_interval  # seconds

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.connections.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.connections.discard(websocket)

    def clear(self) -> None:
        self.connections.clear()

    @staticmethod
    def _is_ready(websocket: WebSocket) -> bool:
        return (
            websocket.client_state == WebSocketState.CONNECTED
            and websocket.application_state == WebSocketState.CONNECTED
        )

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Serialize once and send to every ready subscriber; broken ones are dropped."""
        payload = json.dumps(message, default=str)
        targets = [ws for ws in list(self.connections) if self._is_ready(ws)]
        if not targets:
            return

        results = await asyncio.gather(
            *(ws.send_text(payload) for ws in targets),
            return_exceptions=True,
        )

        # Clean up dead connections
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.debug(f"Dropping websocket subscriber after send failure: {result}")
                self.connections.discard(ws)

    async def broadcast_message(self, msg: Message) -> None:
        """Pipeline handler: relay one processed message."""
        await self.broadcast(msg.to_dict())

    @property
    def connection_count(self) -> int:
        return len(self.connections)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.relay.broadcaster

    await manager.connect(websocket)
    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=manager.heartbeat_interval,
                )
                if data.strip() == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
            except asyncio.TimeoutError:
                # Send heartbeat
                try:
                    await websocket.send_text(json.dumps({"type": "heartbeat"}))
                except Exception:
                    break

    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
