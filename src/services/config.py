"""
Loads and handles config from config.yml
Secrets (TELEGRAM_BOT_TOKEN) and FEED_URL are loaded from .env / the environment
"""
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class Config(BaseModel):
    # Feed
    FEED_URL: Optional[str] = None
    FEED_LABEL: str = "Feed Watch"
    DEFAULT_CATEGORY: str = "BDMV"
    USER_AGENT: str = "Mozilla/5.0 (compatible; FeedWatch/1.0)"

    # Polling
    POLL_INTERVAL_SECONDS: float = Field(300.0, gt=0)
    STARTUP_DELAY_SECONDS: float = Field(5.0, ge=0)
    FETCH_TIMEOUT_SECONDS: float = Field(10.0, gt=0)
    TICK_TIMEOUT_SECONDS: Optional[float] = Field(None, gt=0)
    CACHE_CAPACITY: int = Field(500, ge=1)
    INSTANCE_INDEX: int = Field(0, ge=0)

    # Fan-out
    DEFAULT_FILTER: str = ".*"
    MAX_ITEMS_PER_TICK: int = Field(10, ge=1)
    MESSAGE_DELAY_SECONDS: float = Field(1.0, ge=0)
    CONCURRENT_FANOUT: bool = False

    # Subscriber store
    DATABASE_PATH: str = "data/feed_watch.db"

    # Delivery
    TELEGRAM_ENABLED: bool = False
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    FILE_OUTPUT_DIR: str = "output"


def _bool(value: str | bool) -> bool:
    """Convert string or bool to boolean."""
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes", "on")


def _get_config_path() -> Optional[str]:
    """Get the path to config.yml, handling different working directories."""
    explicit = os.getenv("FEED_WATCH_CONFIG")
    if explicit:
        return explicit

    # Try relative path first
    if os.path.exists('resources/config.yml'):
        return 'resources/config.yml'

    # Try from project root
    project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    config_path = os.path.join(project_root, 'resources', 'config.yml')
    if os.path.exists(config_path):
        return config_path

    return None


def _instance_index(config: Dict[str, Any]) -> int:
    for key in ("FEED_WATCH_INSTANCE_INDEX", "SHARD_ID"):
        value = os.getenv(key)
        if value not in (None, ""):
            return int(value)
    return int(config.get("INSTANCE_INDEX", 0))


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from config.yml and secrets from .env."""
    # Load .env for sensitive credentials
    load_dotenv()

    config_path = path or _get_config_path()
    config: Dict[str, Any] = {}
    if config_path:
        with open(config_path, 'r') as file:
            config = yaml.safe_load(file) or {}

    tick_timeout = config.get("TICK_TIMEOUT_SECONDS")

    return Config(
        FEED_URL=os.getenv("FEED_URL") or config.get("FEED_URL"),
        FEED_LABEL=config.get("FEED_LABEL", "Feed Watch"),
        DEFAULT_CATEGORY=config.get("DEFAULT_CATEGORY", "BDMV"),
        USER_AGENT=config.get("USER_AGENT", "Mozilla/5.0 (compatible; FeedWatch/1.0)"),

        POLL_INTERVAL_SECONDS=float(config.get("POLL_INTERVAL_SECONDS", 300)),
        STARTUP_DELAY_SECONDS=float(config.get("STARTUP_DELAY_SECONDS", 5)),
        FETCH_TIMEOUT_SECONDS=float(config.get("FETCH_TIMEOUT_SECONDS", 10)),
        TICK_TIMEOUT_SECONDS=float(tick_timeout) if tick_timeout else None,
        CACHE_CAPACITY=int(config.get("CACHE_CAPACITY", 500)),
        INSTANCE_INDEX=_instance_index(config),

        DEFAULT_FILTER=config.get("DEFAULT_FILTER") or ".*",
        MAX_ITEMS_PER_TICK=int(config.get("MAX_ITEMS_PER_TICK", 10)),
        MESSAGE_DELAY_SECONDS=float(config.get("MESSAGE_DELAY_SECONDS", 1.0)),
        CONCURRENT_FANOUT=_bool(config.get("CONCURRENT_FANOUT", False)),

        DATABASE_PATH=os.getenv("DATABASE_PATH") or config.get("DATABASE_PATH", "data/feed_watch.db"),

        TELEGRAM_ENABLED=_bool(config.get("TELEGRAM_ENABLED", False)),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN"),
        FILE_OUTPUT_DIR=config.get("FILE_OUTPUT_DIR", "output"),
    )
