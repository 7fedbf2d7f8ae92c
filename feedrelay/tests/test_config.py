"""Tests for settings and relay config loading."""

from __future__ import annotations

import json

import pytest

from feedrelay.config import Settings, load_relay_config


def test_defaults_match_inert_demo_connectors():
    config = load_relay_config(Settings(_env_file=None))

    assert config.pipeline.dedup_limit == 10000
    assert [(c.id, c.platform, c.poll_interval_ms) for c in config.connectors] == [
        ("telegram-1", "telegram", 5000),
        ("mastodon-1", "mastodon", 7000),
    ]
    assert all(not c.webhook_enabled for c in config.connectors)


def test_connectors_parsed_from_env_json(monkeypatch):
    monkeypatch.setenv(
        "CONNECTORS",
        json.dumps([{"id": "tg-main", "platform": "telegram", "bot_token": "t", "allowed_updates": ["message"]}]),
    )
    monkeypatch.setenv("DEDUP_LIMIT", "25")

    config = load_relay_config(Settings(_env_file=None))

    assert config.pipeline.dedup_limit == 25
    assert len(config.connectors) == 1
    tg = config.connectors[0]
    assert tg.bot_token == "t"
    assert tg.allowed_updates == ["message"]
    assert tg.poll_timeout_sec == 25


def test_file_pipeline_keys_merge_and_connectors_kept_when_absent(tmp_path):
    path = tmp_path / "relay.json"
    path.write_text(json.dumps({"pipeline": {"dedup_limit": 3}}))

    config = load_relay_config(Settings(_env_file=None, CONFIG_PATH=str(path)))

    assert config.pipeline.dedup_limit == 3
    assert [c.id for c in config.connectors] == ["telegram-1", "mastodon-1"]


def test_missing_file_falls_back_to_env(tmp_path):
    config = load_relay_config(Settings(_env_file=None, CONFIG_PATH=str(tmp_path / "absent.json")))
    assert len(config.connectors) == 2


def test_invalid_file_raises(tmp_path):
    path = tmp_path / "relay.json"
    path.write_text("{broken")

    with pytest.raises(ValueError):
        load_relay_config(Settings(_env_file=None, CONFIG_PATH=str(path)))


def test_invalid_connector_entry_raises(tmp_path):
    path = tmp_path / "relay.json"
    path.write_text(json.dumps({"connectors": [{"platform": "telegram"}]}))

    with pytest.raises(ValueError):
        load_relay_config(Settings(_env_file=None, CONFIG_PATH=str(path)))


def test_cors_origins_list_formats():
    assert Settings(_env_file=None, CORS_ORIGINS='["https://a.example"]').cors_origins_list == ["https://a.example"]
    assert Settings(_env_file=None, CORS_ORIGINS="https://a, https://b").cors_origins_list == ["https://a", "https://b"]
