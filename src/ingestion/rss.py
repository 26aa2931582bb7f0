"""
Ingestion from RSS sources
"""
import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import httpx

from core.entities import FeedEntry
from core.errors import FetchFailure
from ingestion.base import FeedFetcher
from ingestion.normalizer import EntryNormalizer

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; FeedWatch/1.0)"


class RSSFeedFetcher(FeedFetcher):
    def __init__(
        self,
        normalizer: EntryNormalizer,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.normalizer = normalizer
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
                transport=self.transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.TimeoutException as e:
            raise FetchFailure(url, f"timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise FetchFailure(url, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchFailure(url, f"{e.__class__.__name__}: {e}") from e

    async def fetch(self, url: str) -> List[FeedEntry]:
        body = await self._download(url)

        # Keep the raw description markup; the normalizer resolves image URLs itself
        feed = feedparser.parse(io.BytesIO(body), resolve_relative_uris=False, sanitize_html=False)

        if feed.bozo and not feed.entries:
            reason = getattr(feed, "bozo_exception", None) or "malformed feed"
            raise FetchFailure(url, f"parse error: {reason}")

        fetched_at = datetime.now(timezone.utc)
        entries = [self.normalizer.normalize(entry, fetched_at) for entry in feed.entries]
        logger.debug(f"Fetched {len(entries)} entries from {url}")
        return entries
