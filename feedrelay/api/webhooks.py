"""Webhook endpoint: hands pushed platform events to the owning connector."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from feedrelay.connectors.base import WebhookCapable
from feedrelay.state import RelayState, get_state

logger = logging.getLogger("feedrelay.webhooks")

router = APIRouter(tags=["webhooks"])


async def _read_payload(request: Request):
    """Parsed JSON body, or None when the body is not valid JSON."""
    body = await request.body()
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@router.post("/connector/{connector_id}/webhook")
async def connector_webhook(
    connector_id: str,
    request: Request,
    state: RelayState = Depends(get_state),
):
    """Receive one pushed event for a connector.

    Secret mismatches, malformed bodies and irrelevant events all yield no
    message and still answer ``{"ok": true}``.
    """
    connector = state.runner.get_connector(connector_id)
    if connector is None:
        return JSONResponse({"error": "not_found"}, status_code=404)

    capability = connector.capability()
    if not isinstance(capability, WebhookCapable):
        return JSONResponse({"error": "not_supported"}, status_code=404)

    payload = await _read_payload(request)
    headers = {key.lower(): value for key, value in request.headers.items()}
    messages = await capability.deliver(payload, headers)

    for msg in messages:
        state.runner.process_message(msg)

    if messages:
        logger.info(f"Webhook for {connector_id} accepted {len(messages)} message(s)")
    else:
        logger.debug(f"Webhook for {connector_id} produced no message")

    return {"ok": True}
