"""
File delivery channel
"""
import json
import re
from dataclasses import asdict
from pathlib import Path

import aiofiles

from core.entities import FeedNotification
from core.errors import InvalidTargetError, TransientDeliveryError
from delivery.base import DeliveryChannel

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class FileDelivery(DeliveryChannel):
    """Appends notifications as JSON lines, one file per target."""

    name = "file"

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, target: str) -> Path:
        safe = _UNSAFE.sub("_", target.strip()).strip("._")
        if not safe:
            raise InvalidTargetError(target, "empty target name")
        return self.output_dir / f"{safe}.jsonl"

    async def send(self, target: str, notification: FeedNotification) -> None:
        path = self.path_for(target)

        record = asdict(notification)
        record["published_at"] = notification.published_at.isoformat()

        try:
            async with aiofiles.open(path, "a", encoding="utf-8") as f:
                await f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            raise TransientDeliveryError(target, str(e)) from e
