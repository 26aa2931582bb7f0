"""
SeenCache - bounded record of previously observed feed entries.
Classifies freshly fetched entries as new, edited or unchanged.
"""
import logging
from collections import OrderedDict
from typing import Iterable, Iterator, List, Optional

from core.entities import ChangedEntry, ChangeKind, FeedEntry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 500


class SeenCache:
    """
    Maps entry id -> last known title.

    Eviction is by first insertion, not by access: updating a title keeps
    the key in its original position. An entry evicted while still live in
    the feed is reported as new on its next appearance.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._titles: "OrderedDict[str, str]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._titles)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._titles

    def get(self, entry_id: str) -> Optional[str]:
        return self._titles.get(entry_id)

    def keys(self) -> Iterator[str]:
        """Ids from oldest to newest insertion."""
        return iter(list(self._titles))

    def classify(self, entry: FeedEntry) -> Optional[ChangeKind]:
        """Record the entry and return NEW, EDITED, or None when unchanged."""
        previous = self._titles.get(entry.id)

        if previous is None:
            self._titles[entry.id] = entry.title
            return ChangeKind.NEW

        if previous != entry.title:
            # Assigning an existing key does not move it in an OrderedDict
            self._titles[entry.id] = entry.title
            logger.info(f"Detected edit on {entry.id} ({entry.title})")
            return ChangeKind.EDITED

        return None

    def detect(self, entries: Iterable[FeedEntry]) -> List[ChangedEntry]:
        """Classify a batch in feed order, prune, and return the changes."""
        changes: List[ChangedEntry] = []
        for entry in entries:
            kind = self.classify(entry)
            if kind is not None:
                changes.append(ChangedEntry(entry=entry, kind=kind))
        self.prune()
        return changes

    def seed(self, entries: Iterable[FeedEntry]) -> int:
        """Insert a baseline without reporting anything. Returns the cache size."""
        for entry in entries:
            self._titles[entry.id] = entry.title
        self.prune()
        return len(self._titles)

    def prune(self) -> int:
        """Drop the oldest entries beyond capacity. Returns how many were evicted."""
        excess = len(self._titles) - self.capacity
        for _ in range(max(excess, 0)):
            self._titles.popitem(last=False)
        if excess > 0:
            logger.debug(f"Evicted {excess} entries from seen cache")
        return max(excess, 0)
