"""
Subscriber store.
The poller only reads from it; writes exist for the command line tooling.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from core.entities import Subscriber
from services.database import Database

logger = logging.getLogger(__name__)


class SubscriberStore(ABC):
    """
    Read interface to wherever subscriber configuration lives.
    """

    @abstractmethod
    async def get_enabled_subscribers(self) -> List[Subscriber]:
        """Return every enabled subscriber with a delivery target."""
        raise NotImplementedError


class StaticSubscriberStore(SubscriberStore):
    """In-memory store, handy for fixed deployments and tests."""

    def __init__(self, subscribers: List[Subscriber]):
        self.subscribers = list(subscribers)

    async def get_enabled_subscribers(self) -> List[Subscriber]:
        return [s for s in self.subscribers if s.enabled and s.channel_target]


class SQLiteSubscriberStore(SubscriberStore):
    def __init__(self, database: Database):
        self.db = database
        self._initialized = False

    async def init_tables(self) -> None:
        """Initialize the subscriber table."""
        if self._initialized:
            return
        async with self.db.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS feed_subscribers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel_target TEXT NOT NULL UNIQUE,
                    name TEXT,
                    enabled BOOLEAN NOT NULL DEFAULT 1,
                    filter_pattern TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.commit()
        self._initialized = True
        logger.info("Subscriber table initialized")

    @staticmethod
    def _to_subscriber(row) -> Subscriber:
        return Subscriber(
            channel_target=row["channel_target"],
            enabled=bool(row["enabled"]),
            filter_pattern=row["filter_pattern"],
            name=row["name"],
        )

    async def get_enabled_subscribers(self) -> List[Subscriber]:
        await self.init_tables()
        rows = await self.db.fetchall(
            """SELECT channel_target, name, enabled, filter_pattern
               FROM feed_subscribers
               WHERE enabled = 1 AND channel_target != ''
               ORDER BY id"""
        )
        return [self._to_subscriber(row) for row in rows]

    async def list_subscribers(self) -> List[Subscriber]:
        await self.init_tables()
        rows = await self.db.fetchall(
            "SELECT channel_target, name, enabled, filter_pattern FROM feed_subscribers ORDER BY id"
        )
        return [self._to_subscriber(row) for row in rows]

    async def add_subscriber(
        self,
        channel_target: str,
        filter_pattern: Optional[str] = None,
        name: Optional[str] = None,
        enabled: bool = True,
    ) -> None:
        """Create or update a subscriber keyed by its delivery target."""
        await self.init_tables()
        await self.db.execute(
            """
            INSERT INTO feed_subscribers (channel_target, name, enabled, filter_pattern)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(channel_target) DO UPDATE SET
                name = excluded.name,
                enabled = excluded.enabled,
                filter_pattern = excluded.filter_pattern,
                updated_at = CURRENT_TIMESTAMP
            """,
            (channel_target, name, int(enabled), filter_pattern),
        )

    async def remove_subscriber(self, channel_target: str) -> bool:
        await self.init_tables()
        count = await self.db.execute(
            "DELETE FROM feed_subscribers WHERE channel_target = ?",
            (channel_target,),
        )
        return count > 0
