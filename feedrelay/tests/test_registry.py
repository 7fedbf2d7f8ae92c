"""Tests for the platform registry."""

from feedrelay.config import ConnectorConfig
from feedrelay.connectors.base import BaseConnector, PollOnly
from feedrelay.connectors.mastodon import MastodonConnector
from feedrelay.connectors.registry import ConnectorRegistry, default_registry
from feedrelay.connectors.telegram import TelegramConnector


class DummyConnector(BaseConnector):
    def __init__(self, connector_id: str) -> None:
        super().__init__("dummy", connector_id)

    async def start(self) -> None:
        self.running = True

    async def stop(self) -> None:
        self.running = False


def test_default_registry_builds_both_platforms():
    registry = default_registry()

    telegram = registry.build_connector(
        ConnectorConfig(id="tg", platform="telegram", bot_token="t", poll_timeout_sec=5, poll_interval_ms=100)
    )
    mastodon = registry.build_connector(
        ConnectorConfig(id="md", platform="mastodon", base_url="https://m.example/", timeline="home")
    )

    assert isinstance(telegram, TelegramConnector)
    assert telegram.poll_timeout_sec == 5
    assert telegram.interval_ms == 100
    assert isinstance(mastodon, MastodonConnector)
    assert mastodon.base_url == "https://m.example"
    assert mastodon.timeline == "home"
    assert mastodon.interval_ms == MastodonConnector.DEFAULT_INTERVAL_MS
    assert registry.platforms == ["mastodon", "telegram"]


def test_unknown_platform_is_skipped():
    assert default_registry().build_connector(ConnectorConfig(id="x", platform="irc")) is None


def test_new_platform_can_be_registered():
    registry = ConnectorRegistry()
    registry.register_platform("dummy", lambda config, transport: DummyConnector(config.id))

    connector = registry.build_connector(ConnectorConfig(id="d-1", platform="dummy"))

    assert isinstance(connector, DummyConnector)
    assert isinstance(connector.capability(), PollOnly)
