"""
Subscriber Fan-out.
Delivers changed feed entries to every subscriber whose filter matches,
with a per-tick cap and a fixed delay between consecutive messages
(longer when the target asks us to back off).
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence

from core.entities import ChangedEntry, FeedNotification, Subscriber
from core.errors import InvalidTargetError, TransientDeliveryError
from delivery.base import DeliveryChannel
from services.subscribers import SubscriberStore

logger = logging.getLogger(__name__)


@dataclass
class FanoutReport:
    subscribers: int = 0
    sent: int = 0
    failed: int = 0
    dropped: int = 0

    def merge(self, other: "FanoutReport") -> None:
        self.sent += other.sent
        self.failed += other.failed
        self.dropped += other.dropped


class SubscriberFanout:
    def __init__(
        self,
        store: SubscriberStore,
        channel: DeliveryChannel,
        *,
        default_filter: str = ".*",
        max_per_tick: int = 10,
        message_delay: float = 1.0,
        concurrent: bool = False,
    ):
        self.store = store
        self.channel = channel
        self.default_filter = default_filter
        self.max_per_tick = max_per_tick
        self.message_delay = message_delay
        self.concurrent = concurrent

    def _compile(self, pattern: Optional[str], cache: Dict[str, Optional[Pattern]]) -> Optional[Pattern]:
        """Compile case-insensitively; an invalid pattern yields None (matches nothing)."""
        source = pattern if pattern and pattern.strip() else self.default_filter
        if source not in cache:
            try:
                cache[source] = re.compile(source, re.IGNORECASE)
            except re.error as e:
                logger.warning(f"Invalid filter pattern {source!r}: {e}")
                cache[source] = None
        return cache[source]

    def select(
        self,
        subscriber: Subscriber,
        changes: Sequence[ChangedEntry],
        cache: Optional[Dict[str, Optional[Pattern]]] = None,
    ) -> List[ChangedEntry]:
        """Entries matching the subscriber's filter, in feed order."""
        regex = self._compile(subscriber.filter_pattern, {} if cache is None else cache)
        if regex is None:
            return []
        return [change for change in changes if regex.search(change.entry.title)]

    async def _deliver_to(self, subscriber: Subscriber, matches: List[ChangedEntry]) -> FanoutReport:
        report = FanoutReport()
        batch = matches[: self.max_per_tick]
        report.dropped = len(matches) - len(batch)
        if report.dropped:
            logger.debug(f"Dropping {report.dropped} entries over the cap for {subscriber.label}")

        backoff = 0.0
        for i, change in enumerate(batch):
            if i > 0:
                delay = max(self.message_delay, backoff)
                if delay > 0:
                    await asyncio.sleep(delay)
            backoff = 0.0
            try:
                await self.channel.send(subscriber.channel_target, FeedNotification.from_change(change))
                report.sent += 1
            except InvalidTargetError as e:
                report.failed += len(batch) - i
                logger.error(
                    f"Invalid delivery target: subscriber={subscriber.label}, "
                    f"target={subscriber.channel_target}, channel={self.channel.name}, error={e.reason}"
                )
                break
            except TransientDeliveryError as e:
                report.failed += 1
                backoff = e.retry_after or 0.0
                logger.error(
                    f"Delivery failed: subscriber={subscriber.label}, "
                    f"target={subscriber.channel_target}, entry={change.entry.id}, error={e.reason}"
                )
            except Exception as e:
                report.failed += 1
                logger.exception(
                    f"Unexpected delivery error: subscriber={subscriber.label}, "
                    f"target={subscriber.channel_target}, entry={change.entry.id}: {e}"
                )

        return report

    async def deliver(self, changes: Sequence[ChangedEntry]) -> FanoutReport:
        """Deliver a batch of changed entries to all enabled, matching subscribers."""
        report = FanoutReport()
        if not changes:
            return report

        try:
            subscribers = await self.store.get_enabled_subscribers()
        except Exception as e:
            logger.error(f"Failed to load subscribers: {e}")
            return report

        subscribers = [s for s in subscribers if s.enabled and s.channel_target]
        report.subscribers = len(subscribers)
        if not subscribers:
            logger.info("No subscribers to notify")
            return report

        patterns: Dict[str, Optional[Pattern]] = {}
        jobs = []
        for subscriber in subscribers:
            matches = self.select(subscriber, changes, patterns)
            if matches:
                jobs.append(self._deliver_to(subscriber, matches))

        if self.concurrent:
            results = await asyncio.gather(*jobs)
        else:
            results = [await job for job in jobs]

        for result in results:
            report.merge(result)

        logger.info(
            f"Fan-out complete: {report.sent} sent, {report.failed} failed, "
            f"{report.dropped} dropped across {report.subscribers} subscribers"
        )
        return report
