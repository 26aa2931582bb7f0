"""
Poll Scheduler - drives the fetch -> detect -> fan-out cycle.
A single coroutine runs every tick, so ticks never overlap and the
seen cache needs no locking.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from core.errors import FetchFailure
from ingestion.base import FeedFetcher
from services.fanout import SubscriberFanout
from services.seen_cache import SeenCache

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
FETCH_FAILED = "fetch_failed"
EMPTY = "empty"
BASELINE = "baseline"
UNCHANGED = "unchanged"
DELIVERED = "delivered"
TIMED_OUT = "timed_out"
ERROR = "error"


@dataclass(frozen=True)
class TickResult:
    status: str
    fetched: int = 0
    changed: int = 0


def always_active() -> bool:
    return True


def instance_index_gate(index: int) -> Callable[[], bool]:
    """Only the replica with index 0 polls."""
    def is_active() -> bool:
        return index == 0
    return is_active


class FeedPoller:
    def __init__(
        self,
        feed_url: str,
        fetcher: FeedFetcher,
        cache: SeenCache,
        fanout: SubscriberFanout,
        *,
        is_active_poller: Callable[[], bool] = always_active,
        interval: float = 300.0,
        startup_delay: float = 5.0,
        tick_timeout: Optional[float] = None,
    ):
        self.feed_url = feed_url
        self.fetcher = fetcher
        self.cache = cache
        self.fanout = fanout
        self.is_active_poller = is_active_poller
        self.interval = interval
        self.startup_delay = startup_delay
        self.tick_timeout = tick_timeout
        self._baseline_done = False

    @property
    def baseline_done(self) -> bool:
        return self._baseline_done

    def _is_active(self) -> bool:
        try:
            return bool(self.is_active_poller())
        except Exception as e:
            logger.error(f"Active poller check failed, skipping tick: {e}")
            return False

    async def _tick(self) -> TickResult:
        if not self._is_active():
            logger.debug("Not the active poller, skipping tick")
            return TickResult(SKIPPED)

        try:
            entries = await self.fetcher.fetch(self.feed_url)
        except FetchFailure as e:
            logger.warning(f"Feed fetch failed: {e.reason}")
            return TickResult(FETCH_FAILED)

        if not entries:
            logger.info("Feed returned no entries. Maybe the feed is down?")
            return TickResult(EMPTY)

        if not self._baseline_done:
            size = self.cache.seed(entries)
            self._baseline_done = True
            logger.info(f"Seeded feed cache with {size} entries")
            return TickResult(BASELINE, fetched=len(entries))

        changes = self.cache.detect(entries)
        if not changes:
            return TickResult(UNCHANGED, fetched=len(entries))

        logger.info(f"Found {len(changes)} new/edited feed entries")
        await self.fanout.deliver(changes)
        return TickResult(DELIVERED, fetched=len(entries), changed=len(changes))

    async def tick(self) -> TickResult:
        """Run one cycle. Only cancellation escapes."""
        try:
            if self.tick_timeout:
                return await asyncio.wait_for(self._tick(), timeout=self.tick_timeout)
            return await self._tick()
        except asyncio.TimeoutError:
            logger.error(f"Tick exceeded {self.tick_timeout}s and was abandoned")
            return TickResult(TIMED_OUT)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Feed tick failed: {e}")
            return TickResult(ERROR)

    async def run(self) -> None:
        """Warm up after the startup delay, then tick every interval until cancelled."""
        logger.info(f"Starting feed poller for {self.feed_url} (every {self.interval}s)")
        await asyncio.sleep(self.startup_delay)

        while True:
            started = time.monotonic()
            await self.tick()
            await asyncio.sleep(self.next_delay(time.monotonic() - started))

    def next_delay(self, elapsed: float) -> float:
        """Time left in the current period; a tick longer than the interval starts the next one at once."""
        return max(self.interval - elapsed, 0.0)
