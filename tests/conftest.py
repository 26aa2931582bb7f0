"""Shared fakes for feed watch tests."""
from datetime import datetime, timezone
from typing import List, Set

import pytest

from core.entities import FeedEntry, FeedNotification
from core.errors import InvalidTargetError, TransientDeliveryError
from delivery.base import DeliveryChannel
from ingestion.base import FeedFetcher


def build_entry(entry_id: str, title: str = None, **overrides) -> FeedEntry:
    fields = dict(
        id=entry_id,
        title=title or f"Entry {entry_id}",
        link=f"https://feed.example.org/details.php?id={entry_id}",
        image=None,
        category="BDMV",
        uploader="Unknown",
        size="Unknown",
        published_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return FeedEntry(**fields)


class RecordingChannel(DeliveryChannel):
    """Records sends; fails for configured targets."""

    name = "recording"

    def __init__(self, invalid: Set[str] = (), transient: Set[str] = ()):
        self.invalid = set(invalid)
        self.transient = set(transient)
        self.sent: List[tuple] = []
        self.attempts: List[tuple] = []

    async def send(self, target: str, notification: FeedNotification) -> None:
        self.attempts.append((target, notification))
        if target in self.invalid:
            raise InvalidTargetError(target, "unknown chat")
        if target in self.transient:
            raise TransientDeliveryError(target, "rate limited")
        self.sent.append((target, notification))

    def titles_for(self, target: str) -> List[str]:
        return [n.title for t, n in self.sent if t == target]


class ScriptedFetcher(FeedFetcher):
    """Returns (or raises) the scripted results in order, repeating the last one."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def fetch(self, url: str):
        self.calls += 1
        result = self.results[min(self.calls, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return list(result)


@pytest.fixture
def make_entry():
    return build_entry


@pytest.fixture
def channel():
    return RecordingChannel()
