import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from core.errors import ConfigurationMissing, FetchFailure
from services.config import Config, load_config
from services.database import Database
from services.feed_monitor import build_feed_monitor, create_fetcher
from services.logging import setup_logging
from services.subscribers import SQLiteSubscriberStore

logger = logging.getLogger(__name__)


async def run_monitor(config: Config) -> int:
    try:
        poller = build_feed_monitor(config)
    except ConfigurationMissing as e:
        logger.warning(f"Feed monitor disabled: {e}")
        return 0

    await poller.run()
    return 0


async def check_feed(config: Config, limit: int) -> int:
    """Fetch the feed once and print what the normalizer makes of it."""
    try:
        fetcher = create_fetcher(config)
        entries = await fetcher.fetch(config.FEED_URL)
    except ConfigurationMissing as e:
        print(f"Set FEED_URL first ({e})", file=sys.stderr)
        return 1
    except FetchFailure as e:
        print(str(e), file=sys.stderr)
        return 1

    print(f"Found {len(entries)} entries\n")
    for entry in entries[:limit]:
        print("-" * 60)
        print(f"Title:    {entry.title[:100]}")
        print(f"Link:     {entry.link}")
        print(f"Category: {entry.category}")
        print(f"Size:     {entry.size}")
        print(f"Uploader: {entry.uploader}")
        print(f"Image:    {entry.image or 'none'}")
        print(f"Date:     {entry.published_at.isoformat()}")
        print(f"ID:       {entry.id}")
        print()

    print(f"Showing {min(limit, len(entries))} of {len(entries)} entries.")
    return 0


async def manage_subscribers(config: Config, args: argparse.Namespace) -> int:
    store = SQLiteSubscriberStore(Database(config.DATABASE_PATH))

    if args.command == "subscribe":
        await store.add_subscriber(args.target, filter_pattern=args.filter, name=args.name)
        print(f"Subscribed {args.target}")
        return 0

    if args.command == "unsubscribe":
        if await store.remove_subscriber(args.target):
            print(f"Unsubscribed {args.target}")
            return 0
        print(f"No subscriber {args.target}", file=sys.stderr)
        return 1

    subscribers = await store.list_subscribers()
    if not subscribers:
        print("No subscribers")
    for subscriber in subscribers:
        state = "enabled" if subscriber.enabled else "disabled"
        pattern = subscriber.filter_pattern or f"(default {config.DEFAULT_FILTER})"
        print(f"{subscriber.channel_target}\t{subscriber.name or '-'}\t{state}\t{pattern}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="feed-watch", description="Feed change notifier")
    parser.add_argument("--config", help="Path to config.yml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Start the feed monitor")

    check = sub.add_parser("check", help="Fetch the feed once and print entries")
    check.add_argument("--limit", type=int, default=5)

    subscribe = sub.add_parser("subscribe", help="Add or update a subscriber")
    subscribe.add_argument("target", help="Delivery target (chat id or file name)")
    subscribe.add_argument("--filter", help="Case-insensitive title regex")
    subscribe.add_argument("--name", help="Display name used in logs")

    unsubscribe = sub.add_parser("unsubscribe", help="Remove a subscriber")
    unsubscribe.add_argument("target")

    sub.add_parser("subscribers", help="List subscribers")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = load_config(args.config)

    if args.command == "run":
        return await run_monitor(config)
    if args.command == "check":
        return await check_feed(config, args.limit)
    return await manage_subscribers(config, args)


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Feed monitor stopped")


if __name__ == "__main__":
    cli()
