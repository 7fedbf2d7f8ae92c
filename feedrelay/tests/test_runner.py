"""Tests for the runner: wiring, lifecycle fan-out and dispatch."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest

from feedrelay.config import ConnectorConfig, Settings
from feedrelay.connectors.base import BaseConnector
from feedrelay.connectors.registry import ConnectorRegistry
from feedrelay.observability.metrics import InMemoryMetrics
from feedrelay.runner import Runner
from feedrelay.storage.console import console_storage


class FakeConnector(BaseConnector):
    """Connector whose start/stop can be made slow or failing."""

    def __init__(self, connector_id: str, delay: float = 0.0, fail: bool = False) -> None:
        super().__init__("fake", connector_id)
        self.delay = delay
        self.fail = fail

    async def start(self) -> None:
        await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("boom")
        self.running = True

    async def stop(self) -> None:
        await asyncio.sleep(self.delay)
        self.running = False


def fake_registry(**options) -> ConnectorRegistry:
    registry = ConnectorRegistry()
    registry.register_platform(
        "fake",
        lambda config, transport: FakeConnector(config.id, **options.get(config.id, {})),
    )
    return registry


def configs(*ids: str) -> list[ConnectorConfig]:
    return [ConnectorConfig(id=i, platform="fake") for i in ids]


class TestWiring:
    @pytest.mark.asyncio
    async def test_emitted_messages_reach_handlers(self, make_message):
        runner = Runner(configs("a", "b"), registry=fake_registry())
        received: list[str] = []
        runner.add_handler(lambda m: received.append(m.dedup_key))

        runner.get_connector("a").emit(make_message("1", platform="fake", source_id="a"))
        runner.get_connector("b").emit(make_message("1", platform="fake", source_id="b"))
        runner.get_connector("a").emit(make_message("1", platform="fake", source_id="a"))
        await runner.drain()
        await runner.close()

        assert sorted(received) == ["fake:a:1", "fake:b:1"]

    @pytest.mark.asyncio
    async def test_messages_from_one_source_keep_order(self, make_message):
        runner = Runner(configs("a"), registry=fake_registry())
        received: list[str] = []

        async def slow_handler(msg):
            await asyncio.sleep(0.01 if msg.id == "1" else 0)
            received.append(msg.id)

        runner.add_handler(slow_handler)
        for i in ("1", "2", "3"):
            runner.process_message(make_message(i, source_id="a"))
        await runner.drain()
        await runner.close()

        assert received == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_failing_handler_is_logged_and_dispatch_continues(self, make_message, caplog):
        metrics = InMemoryMetrics()
        runner = Runner(configs("a"), registry=fake_registry(), metrics=metrics)
        received: list[str] = []

        def handler(msg):
            if msg.id == "bad":
                raise ValueError("cannot store")
            received.append(msg.id)

        runner.add_handler(handler)
        with caplog.at_level(logging.ERROR, logger="feedrelay.runner"):
            runner.process_message(make_message("bad", source_id="a"))
            runner.process_message(make_message("good", source_id="a"))
            await runner.drain()
        await runner.close()

        assert received == ["good"]
        assert any("Pipeline failed" in r.getMessage() for r in caplog.records)
        assert metrics.snapshot()["messages"]["dispatch_errors"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_filters_apply_to_connector_output(self, make_message):
        runner = Runner(configs("a"), registry=fake_registry())
        received: list[str] = []
        runner.add_filter(lambda m: m.content != "skip")
        runner.add_handler(lambda m: received.append(m.id))

        runner.process_message(make_message("1", source_id="a", content="skip"))
        runner.process_message(make_message("2", source_id="a"))
        await runner.drain()
        await runner.close()

        assert received == ["2"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_connectors_concurrently(self):
        runner = Runner(
            configs("s1", "s2", "s3"),
            registry=fake_registry(s1={"delay": 0.2}, s2={"delay": 0.2}, s3={"delay": 0.2}),
        )
        loop = asyncio.get_running_loop()

        started_at = loop.time()
        await runner.start()
        elapsed = loop.time() - started_at

        assert all(c.running for c in runner.connectors)
        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_one_failing_start_does_not_block_others(self):
        runner = Runner(configs("bad", "good"), registry=fake_registry(bad={"fail": True}))

        await runner.start()

        assert [s["running"] for s in runner.status()] == [False, True]
        await runner.stop()
        assert [s["running"] for s in runner.status()] == [False, False]

    def test_status_in_configuration_order(self):
        runner = Runner(configs("z", "a", "m"), registry=fake_registry())
        assert [s["id"] for s in runner.status()] == ["z", "a", "m"]
        assert runner.status()[0] == {"running": False, "platform": "fake", "id": "z"}

    def test_get_connector_not_found(self):
        runner = Runner(configs("a"), registry=fake_registry())
        assert runner.get_connector("missing") is None

    def test_unknown_platforms_are_skipped(self):
        runner = Runner([ConnectorConfig(id="x", platform="irc"), *configs("a")], registry=fake_registry())
        assert [c.id for c in runner.connectors] == ["a"]


class TestFromSettings:
    def test_builds_default_platforms_with_console_sink(self):
        runner = Runner.from_settings(Settings(_env_file=None))

        assert [(c.platform, c.id) for c in runner.connectors] == [
            ("telegram", "telegram-1"),
            ("mastodon", "mastodon-1"),
        ]
        assert runner.pipeline.dedup_limit == 10000
        assert console_storage in runner.pipeline._handlers

    def test_config_file_overrides_connectors_and_pipeline(self, tmp_path):
        path = tmp_path / "relay.json"
        path.write_text(
            json.dumps(
                {
                    "pipeline": {"dedup_limit": 50},
                    "connectors": [
                        {"id": "md-main", "platform": "mastodon", "base_url": "https://m.example",
                         "access_token": "tok", "timeline": "home"}
                    ],
                }
            )
        )

        runner = Runner.from_settings(Settings(_env_file=None, CONFIG_PATH=str(path)))

        assert [c.id for c in runner.connectors] == ["md-main"]
        assert runner.pipeline.dedup_limit == 50
