"""Tests for the storage sinks and the stored-message listing."""

from __future__ import annotations

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from feedrelay.api.messages import router as messages_router
from feedrelay.config import settings
from feedrelay.database import get_session
from feedrelay.models.message import StoredMessage
from feedrelay.storage.console import console_storage
from feedrelay.storage.sql import SqlMessageStore


@pytest.mark.asyncio
async def test_console_storage_logs_one_line(make_message, caplog):
    with caplog.at_level(logging.INFO, logger="feedrelay.storage"):
        await console_storage(make_message("7", content="hello"))

    assert "[telegram:tg-1] chan 7: hello" in caplog.text


@pytest.mark.asyncio
async def test_sql_store_persists_and_ignores_redelivery(session_factory, make_message):
    store = SqlMessageStore(session_factory)

    await store(make_message("1", content="first"))
    await store(make_message("1", content="again"))
    await store(make_message("2"))

    async with session_factory() as session:
        count = (await session.execute(select(func.count(StoredMessage.id)))).scalar()
        first = (
            await session.execute(select(StoredMessage).where(StoredMessage.message_id == "1"))
        ).scalar_one()

    assert count == 2
    assert first.content == "first"
    assert first.raw_json == '{"id": "1"}'


@pytest.fixture
def messages_app(db_session):
    app = FastAPI()
    app.include_router(messages_router)

    async def _get_session_override():
        yield db_session

    app.dependency_overrides[get_session] = _get_session_override
    return app


@pytest.mark.asyncio
async def test_list_messages_filters_by_platform(messages_app, session_factory, make_message, monkeypatch):
    monkeypatch.setattr(settings, "persist_messages", True)
    store = SqlMessageStore(session_factory)
    await store(make_message("1", platform="telegram"))
    await store(make_message("2", platform="mastodon", source_id="md-1"))
    await store(make_message("3", platform="mastodon", source_id="md-1"))

    transport = ASGITransport(app=messages_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/messages", params={"platform": "mastodon"})

    body = resp.json()
    assert resp.status_code == 200
    assert body["total"] == 2
    assert [m["message_id"] for m in body["messages"]] == ["3", "2"]


@pytest.mark.asyncio
async def test_list_messages_unavailable_without_persistence(messages_app, monkeypatch):
    monkeypatch.setattr(settings, "persist_messages", False)

    transport = ASGITransport(app=messages_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/api/messages")

    assert resp.status_code == 503
