#!/usr/bin/env python3
"""End-to-end smoke for the FeedRelay API.

Runs a realistic flow against a running server and fails fast on regressions.
Assumes the default connector set (telegram-1, mastodon-1).
"""

from __future__ import annotations

import json
import os
import sys

import httpx

BASE_URL = os.getenv("FEEDRELAY_URL", "http://127.0.0.1:8000")
TIMEOUT = 30.0
CONNECTOR_ID = "telegram-1"


def expect(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def get(client: httpx.Client, path: str, expected: int = 200, **kwargs):
    resp = client.get(f"{BASE_URL}{path}", **kwargs)
    expect(resp.status_code == expected, f"GET {path} -> {resp.status_code} != {expected}; body={resp.text[:500]}")
    return resp


def post(client: httpx.Client, path: str, expected: int = 200, **kwargs):
    resp = client.post(f"{BASE_URL}{path}", **kwargs)
    expect(resp.status_code == expected, f"POST {path} -> {resp.status_code} != {expected}; body={resp.text[:500]}")
    return resp


def main() -> int:
    with httpx.Client(timeout=TIMEOUT) as client:
        # 1) Health
        health = get(client, "/health").json()
        expect(health.get("ok") is True, "health is not ok")

        # 2) Lifecycle
        started = post(client, "/start").json()
        expect(started.get("running") is True, "start did not report running")

        status = get(client, "/status").json()
        ids = [c["id"] for c in status.get("connectors", [])]
        expect(CONNECTOR_ID in ids, f"{CONNECTOR_ID} missing from /status")

        single = get(client, f"/connector/{CONNECTOR_ID}/status").json()
        expect(single.get("platform") == "telegram", "connector status platform mismatch")

        # 3) Webhook delivery, then redelivery of the same update
        update = {
            "update_id": 9001,
            "message": {
                "message_id": 77,
                "chat": {"id": -100},
                "from": {"id": 42},
                "text": "smoke",
                "date": 1700000000,
            },
        }
        before = get(client, "/metrics").json()["dedup_cache_size"]
        for _ in range(2):
            ack = post(client, f"/connector/{CONNECTOR_ID}/webhook", json=update).json()
            expect(ack == {"ok": True}, f"webhook ack unexpected: {ack}")

        after = get(client, "/metrics").json()["dedup_cache_size"]
        expect(after - before <= 1, "redelivered update grew the dedup cache twice")

        # 4) Negative sanity
        missing = client.get(f"{BASE_URL}/connector/does-not-exist/status")
        expect(missing.status_code == 404, f"expected 404 for unknown connector, got {missing.status_code}")

        stopped = post(client, "/stop").json()
        expect(stopped.get("running") is False, "stop did not report stopped")

    print(json.dumps({"ok": True, "message": "FeedRelay smoke passed"}))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as exc:  # noqa: BLE001
        print(json.dumps({"ok": False, "error": str(exc)}))
        sys.exit(1)
