"""FeedRelay configuration loaded from environment variables and an optional JSON file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

Timeline = Literal["mentions", "public", "public:local", "home"]


class ConnectorConfig(BaseModel):
    """One configured platform source."""

    id: str
    platform: str
    poll_interval_ms: Optional[int] = None
    webhook_enabled: bool = False
    webhook_secret: Optional[str] = None

    # Telegram
    bot_token: Optional[str] = None
    webhook_url: Optional[str] = None
    allowed_updates: Optional[list[str]] = None
    poll_timeout_sec: int = 25
    api_base_url: str = "https://api.telegram.org"

    # Mastodon
    base_url: Optional[str] = None
    access_token: Optional[str] = None
    timeline: Timeline = "mentions"

    model_config = {"extra": "ignore"}


class PipelineConfig(BaseModel):
    dedup_limit: int = Field(default=10000, ge=1)


class RelayConfig(BaseModel):
    """Effective pipeline + connector configuration for one process."""

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    connectors: list[ConnectorConfig] = Field(default_factory=list)


def default_connectors() -> list[ConnectorConfig]:
    return [
        ConnectorConfig(id="telegram-1", platform="telegram", poll_interval_ms=5000),
        ConnectorConfig(id="mastodon-1", platform="mastodon", poll_interval_ms=7000),
    ]


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    cors_origins: str = Field(default='["http://localhost:3000"]', alias="CORS_ORIGINS")
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    rate_limit_default: str = Field(default="600/minute", alias="RATE_LIMIT_DEFAULT")

    # Pipeline + connectors
    dedup_limit: int = Field(default=10000, ge=1, alias="DEDUP_LIMIT")
    connectors: list[ConnectorConfig] = Field(default_factory=default_connectors, alias="CONNECTORS")
    config_path: str = Field(default="", alias="CONFIG_PATH")
    autostart: bool = Field(default=False, alias="AUTOSTART")

    # Storage
    persist_messages: bool = Field(default=False, alias="PERSIST_MESSAGES")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./feedrelay.db",
        alias="DATABASE_URL",
    )
    auto_create_schema: bool = Field(default=True, alias="AUTO_CREATE_SCHEMA")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"production", "prod"}

    @property
    def cors_origins_list(self) -> list[str]:
        raw = (self.cors_origins or "").strip()
        if not raw:
            return []

        # Supports JSON list format and comma-separated format.
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(origin).strip() for origin in parsed if str(origin).strip()]
            except json.JSONDecodeError:
                pass

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


def load_relay_config(settings: Settings) -> RelayConfig:
    """Build the effective config: env values, patched by CONFIG_PATH when it exists.

    The file uses the shape ``{"pipeline": {...}, "connectors": [...]}``.
    Pipeline keys are merged over the env values; ``connectors`` replaces the
    env list when present.
    """
    pipeline = {"dedup_limit": settings.dedup_limit}
    connectors = [c.model_dump() for c in settings.connectors]

    path = Path(settings.config_path) if settings.config_path else None
    if path is not None and path.exists():
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValueError(f"Cannot read config file {path}: {exc}") from exc

        if parsed:
            if not isinstance(parsed, dict):
                raise ValueError(f"Config file {path} must contain a JSON object")
            pipeline.update(parsed.get("pipeline") or {})
            if parsed.get("connectors") is not None:
                connectors = parsed["connectors"]

    try:
        return RelayConfig.model_validate({"pipeline": pipeline, "connectors": connectors})
    except ValidationError as exc:
        raise ValueError(f"Invalid relay configuration: {exc}") from exc


settings = Settings()
