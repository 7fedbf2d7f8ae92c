"""Platform registry: maps a platform tag to a connector factory."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from feedrelay.config import ConnectorConfig
from feedrelay.connectors.base import BaseConnector
from feedrelay.connectors.mastodon import MastodonConnector
from feedrelay.connectors.telegram import TelegramConnector

logger = logging.getLogger("feedrelay.registry")

ConnectorFactory = Callable[[ConnectorConfig, Optional[httpx.AsyncBaseTransport]], BaseConnector]


class ConnectorRegistry:
    """Builds connectors from config without the runner knowing any platform."""

    def __init__(self) -> None:
        self._factories: dict[str, ConnectorFactory] = {}

    def register_platform(self, platform: str, factory: ConnectorFactory) -> None:
        self._factories[platform] = factory

    @property
    def platforms(self) -> list[str]:
        return sorted(self._factories)

    def build_connector(
        self,
        config: ConnectorConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Optional[BaseConnector]:
        factory = self._factories.get(config.platform)
        if factory is None:
            logger.warning(f"Unknown platform '{config.platform}' for connector {config.id}; skipping")
            return None
        return factory(config, transport)


def default_registry() -> ConnectorRegistry:
    registry = ConnectorRegistry()
    registry.register_platform("telegram", TelegramConnector.from_config)
    registry.register_platform("mastodon", MastodonConnector.from_config)
    return registry
