"""Tests for settings loading, logging configuration and the metrics registry."""

from __future__ import annotations

import logging

import pytest

from chatsync.config import Settings
from chatsync.logging_config import build_logging_config, configure_logging
from chatsync.monitoring.registry import MetricsRegistry


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("CHATSYNC_ROOMS_COLLECTION", "chat_rooms")
    monkeypatch.setenv("CHATSYNC_DETERMINISTIC_DIRECT_ROOMS", "true")
    monkeypatch.setenv("CHATSYNC_MEDIA_BASE_URL", "https://cdn.test/media/")

    settings = Settings(_env_file=None)

    assert settings.rooms_collection == "chat_rooms"
    assert settings.deterministic_direct_rooms is True
    assert settings.media_base_url == "https://cdn.test/media"
    assert settings.messages_path("r1") == "chat_rooms/r1/messages"


def test_settings_defaults(settings):
    assert settings.users_collection == "users"
    assert settings.assistant_user_id == "bot"
    assert settings.assistant_first_name == "Coach Bot"
    assert settings.start_message_text == "Start Bot!"
    assert settings.deterministic_direct_rooms is False
    assert settings.media_root.is_absolute()


def test_logging_config_follows_settings():
    config = build_logging_config(Settings(_env_file=None, log_level="warning"))
    assert config["root"]["level"] == "WARNING"
    assert "chatsync" not in config["loggers"]
    assert config["loggers"]["chatsync.realtime.transport"]["level"] == "WARNING"

    debug_config = build_logging_config(Settings(_env_file=None, debug=True))
    assert debug_config["loggers"]["chatsync"]["level"] == "DEBUG"
    assert debug_config["loggers"]["chatsync.realtime.transport"]["level"] == "DEBUG"


def test_metrics_registry_renders_samples():
    registry = MetricsRegistry()
    counter = registry.counter("demo_total", "Demo counter.", label_names=("kind",))
    gauge = registry.gauge("demo_open", "Demo gauge.")

    counter.inc(kind="a")
    counter.inc(amount=2, kind="a")
    gauge.inc()
    gauge.dec()
    gauge.inc(amount=3)

    assert counter.value(kind="a") == 3
    assert gauge.value() == 3
    rendered = registry.render()
    assert 'demo_total{kind="a"} 3' in rendered
    assert "# TYPE demo_open gauge" in rendered
    assert "demo_open 3" in rendered


def test_metrics_validate_labels_and_amounts():
    registry = MetricsRegistry()
    counter = registry.counter("checked_total", "Checked.", label_names=("kind",))

    with pytest.raises(ValueError):
        counter.inc(other="x")
    with pytest.raises(ValueError):
        counter.inc(amount=-1, kind="x")
    with pytest.raises(ValueError):
        registry.counter("checked_total", "Again.")


def test_configure_logging_applies_root_level():
    root = logging.getLogger()
    previous = root.level
    try:
        configure_logging(Settings(_env_file=None, log_level="ERROR"))
        assert root.level == logging.ERROR
    finally:
        root.setLevel(previous)
