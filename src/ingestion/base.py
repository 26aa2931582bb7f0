"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from typing import List

from core.entities import FeedEntry


class FeedFetcher(ABC):
    """
    Base interface for feed fetchers.
    """

    @abstractmethod
    async def fetch(self, url: str) -> List[FeedEntry]:
        """
        Fetch and normalize every entry currently in the feed, in feed order.
        Must raise FetchFailure on any failure; never returns a partial list.
        """
        raise NotImplementedError
