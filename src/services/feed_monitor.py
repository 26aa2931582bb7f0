"""
Feed Monitor Factory - builds the poller and its collaborators from configuration.
"""
import logging
from typing import Optional

from core.errors import ConfigurationMissing
from delivery.base import DeliveryChannel
from delivery.file_delivery import FileDelivery
from delivery.telegram_delivery import TelegramDelivery
from ingestion.normalizer import EntryNormalizer
from ingestion.rss import RSSFeedFetcher
from services.config import Config
from services.database import Database
from services.fanout import SubscriberFanout
from services.scheduler import FeedPoller, instance_index_gate
from services.seen_cache import SeenCache
from services.subscribers import SQLiteSubscriberStore, SubscriberStore

logger = logging.getLogger(__name__)


def create_fetcher(config: Config) -> RSSFeedFetcher:
    if not config.FEED_URL:
        raise ConfigurationMissing("FEED_URL")
    normalizer = EntryNormalizer.from_feed_url(config.FEED_URL, config.DEFAULT_CATEGORY)
    return RSSFeedFetcher(
        normalizer,
        timeout=config.FETCH_TIMEOUT_SECONDS,
        user_agent=config.USER_AGENT,
    )


def create_delivery_channel(config: Config) -> DeliveryChannel:
    """
    Telegram when enabled and configured, otherwise JSON-lines files.

    Raises:
        ConfigurationMissing: If Telegram is enabled without a bot token
    """
    if config.TELEGRAM_ENABLED:
        if not config.TELEGRAM_BOT_TOKEN:
            raise ConfigurationMissing("TELEGRAM_BOT_TOKEN")
        return TelegramDelivery(bot_token=config.TELEGRAM_BOT_TOKEN, feed_label=config.FEED_LABEL)
    return FileDelivery(config.FILE_OUTPUT_DIR)


def build_feed_monitor(
    config: Config,
    *,
    store: Optional[SubscriberStore] = None,
    channel: Optional[DeliveryChannel] = None,
) -> FeedPoller:
    """
    Wire fetcher, cache, fan-out and scheduler together.

    Raises:
        ConfigurationMissing: If FEED_URL (or a required delivery secret) is absent
    """
    fetcher = create_fetcher(config)

    fanout = SubscriberFanout(
        store or SQLiteSubscriberStore(Database(config.DATABASE_PATH)),
        channel or create_delivery_channel(config),
        default_filter=config.DEFAULT_FILTER,
        max_per_tick=config.MAX_ITEMS_PER_TICK,
        message_delay=config.MESSAGE_DELAY_SECONDS,
        concurrent=config.CONCURRENT_FANOUT,
    )

    poller = FeedPoller(
        config.FEED_URL,
        fetcher,
        SeenCache(config.CACHE_CAPACITY),
        fanout,
        is_active_poller=instance_index_gate(config.INSTANCE_INDEX),
        interval=config.POLL_INTERVAL_SECONDS,
        startup_delay=config.STARTUP_DELAY_SECONDS,
        tick_timeout=config.TICK_TIMEOUT_SECONDS,
    )
    logger.info(
        f"Feed monitor configured: instance={config.INSTANCE_INDEX}, "
        f"channel={fanout.channel.name}, capacity={config.CACHE_CAPACITY}"
    )
    return poller
