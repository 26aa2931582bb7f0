from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class FeedEntry:
    """
    Canonical representation of a normalized feed item.
    """
    id: str
    title: str
    link: str
    image: Optional[str]
    category: str
    uploader: str
    size: str
    published_at: datetime


class ChangeKind(str, Enum):
    NEW = "new"
    EDITED = "edited"


@dataclass(frozen=True)
class ChangedEntry:
    """
    A feed entry classified as new or edited during one tick.
    """
    entry: FeedEntry
    kind: ChangeKind

    @property
    def edited(self) -> bool:
        return self.kind is ChangeKind.EDITED


@dataclass(frozen=True)
class Subscriber:
    """
    A delivery target with an optional case-insensitive title filter.
    """
    channel_target: str
    enabled: bool = True
    filter_pattern: Optional[str] = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name or self.channel_target


@dataclass(frozen=True)
class FeedNotification:
    """
    Final delivery-ready unit of information.
    """
    title: str
    link: str
    image: Optional[str]
    category: str
    size: str
    uploader: str
    published_at: datetime
    edited: bool

    @classmethod
    def from_change(cls, change: ChangedEntry) -> "FeedNotification":
        entry = change.entry
        return cls(
            title=entry.title,
            link=entry.link,
            image=entry.image,
            category=entry.category,
            size=entry.size,
            uploader=entry.uploader,
            published_at=entry.published_at,
            edited=change.edited,
        )
