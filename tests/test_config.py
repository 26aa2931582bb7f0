"""Tests for configuration loading and monitor wiring."""
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from core.errors import ConfigurationMissing
from delivery.file_delivery import FileDelivery
from services.config import Config, load_config
from services.feed_monitor import build_feed_monitor, create_delivery_channel
from services.subscribers import StaticSubscriberStore


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for key in ("FEED_URL", "FEED_WATCH_INSTANCE_INDEX", "SHARD_ID", "DATABASE_PATH", "TELEGRAM_BOT_TOKEN"):
        monkeypatch.delenv(key, raising=False)
    with patch("services.config.load_dotenv"):
        yield


def _write_config(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_load_config_reads_yaml(tmp_path):
    path = _write_config(tmp_path, """
FEED_URL: "https://feed.example.org/rss"
POLL_INTERVAL_SECONDS: 120
CACHE_CAPACITY: 50
MAX_ITEMS_PER_TICK: 3
CONCURRENT_FANOUT: "yes"
TICK_TIMEOUT_SECONDS: 30
""")

    config = load_config(path)

    assert config.FEED_URL == "https://feed.example.org/rss"
    assert config.POLL_INTERVAL_SECONDS == 120.0
    assert config.CACHE_CAPACITY == 50
    assert config.MAX_ITEMS_PER_TICK == 3
    assert config.CONCURRENT_FANOUT is True
    assert config.TICK_TIMEOUT_SECONDS == 30.0
    assert config.MESSAGE_DELAY_SECONDS == 1.0
    assert config.STARTUP_DELAY_SECONDS == 5.0


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = _write_config(tmp_path, 'FEED_URL: "https://yaml.example.org/rss"\nINSTANCE_INDEX: 0\n')
    monkeypatch.setenv("FEED_URL", "https://env.example.org/rss")
    monkeypatch.setenv("SHARD_ID", "2")

    config = load_config(path)

    assert config.FEED_URL == "https://env.example.org/rss"
    assert config.INSTANCE_INDEX == 2


def test_empty_config_file_uses_defaults(tmp_path):
    config = load_config(_write_config(tmp_path, ""))

    assert config.FEED_URL is None
    assert config.CACHE_CAPACITY == 500
    assert config.TICK_TIMEOUT_SECONDS is None


def test_invalid_capacity_fails_validation(tmp_path):
    with pytest.raises(ValidationError):
        load_config(_write_config(tmp_path, "CACHE_CAPACITY: 0\n"))


def test_missing_feed_url_disables_monitor():
    with pytest.raises(ConfigurationMissing) as exc_info:
        build_feed_monitor(Config(), store=StaticSubscriberStore([]))

    assert exc_info.value.setting == "FEED_URL"


def test_build_feed_monitor_wires_components(tmp_path):
    config = Config(
        FEED_URL="https://feed.example.org/rss",
        FILE_OUTPUT_DIR=str(tmp_path),
        CACHE_CAPACITY=42,
        MAX_ITEMS_PER_TICK=4,
        INSTANCE_INDEX=1,
    )

    poller = build_feed_monitor(config, store=StaticSubscriberStore([]))

    assert poller.cache.capacity == 42
    assert poller.fanout.max_per_tick == 4
    assert isinstance(poller.fanout.channel, FileDelivery)
    assert poller.fetcher.normalizer.origin == "https://feed.example.org"
    assert poller.is_active_poller() is False


def test_telegram_without_token_is_missing_configuration():
    with pytest.raises(ConfigurationMissing):
        create_delivery_channel(Config(TELEGRAM_ENABLED=True))
