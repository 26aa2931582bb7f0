"""
Maps raw feed items into canonical FeedEntry records.
Every field degrades to a documented default; normalize() never raises.
"""
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from core.entities import FeedEntry

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
DEFAULT_TITLE = "Unknown Title"
DEFAULT_CATEGORY = "BDMV"

_IMAGE_EXT = r"(?:jpg|jpeg|png|gif|webp)"

TAG_PATTERN = re.compile(r"<[^>]+>")
IMG_SRC_PATTERN = re.compile(rf"""src=['"]([^'"]+\.{_IMAGE_EXT})""", re.IGNORECASE)
ATTACH_IMAGE_PATTERN = re.compile(rf"^/?attachments/[^\s'\"<>]+\.{_IMAGE_EXT}$", re.IGNORECASE)
IMAGE_URL_PATTERN = re.compile(
    rf"""(?:https?:)?//[^\s'"<>]+?\.{_IMAGE_EXT}|attachments/[^\s'"<>]+?\.{_IMAGE_EXT}""",
    re.IGNORECASE,
)
SIZE_PATTERN = re.compile(r"\[(\d+(?:\.\d+)?\s*[KMG]i?B)\]", re.IGNORECASE)
PAREN_NAME_PATTERN = re.compile(r"\(([^)]+)\)")
LOCAL_PART_PATTERN = re.compile(r"^([^@]+)@")

_SIZE_UNITS = ("B", "KiB", "MiB", "GiB", "TiB")


def _text(value: Any) -> str:
    """Coerce a raw field to a string; None becomes empty."""
    return "" if value is None else str(value)


def strip_html(text: Optional[str]) -> str:
    """Remove markup tags and surrounding whitespace."""
    if not text:
        return ""
    return TAG_PATTERN.sub("", text).strip()


def format_bytes(length: int) -> str:
    """Format a byte count using binary units, e.g. 25183105843 -> '23.45 GiB'."""
    value = float(length)
    for unit in _SIZE_UNITS:
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} B"
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{length} B"


def extract_uploader(author: Optional[str]) -> str:
    """
    Extract a display name from an author field.
    Format is usually "username@host (username)".
    """
    cleaned = strip_html(author)
    if not cleaned:
        return UNKNOWN

    paren = PAREN_NAME_PATTERN.search(cleaned)
    if paren and paren.group(1).strip():
        return paren.group(1).strip()

    local = LOCAL_PART_PATTERN.match(cleaned)
    if local and local.group(1).strip():
        return local.group(1).strip()

    return cleaned


def extract_size(title: Optional[str], length: Any = None) -> str:
    """
    Human-readable size from a structured enclosure length,
    falling back to a bracketed token such as "[23.4 GiB]" in the title.
    """
    try:
        if length is not None and int(length) > 0:
            return format_bytes(int(length))
    except (TypeError, ValueError):
        pass

    if not title:
        return UNKNOWN
    match = SIZE_PATTERN.search(title)
    return match.group(1) if match else UNKNOWN


class EntryNormalizer:
    """
    Normalizes raw feed items (feedparser entries or plain dicts).
    """

    def __init__(self, origin: str, default_category: str = DEFAULT_CATEGORY):
        self.origin = origin.rstrip("/")
        self.default_category = default_category

    @classmethod
    def from_feed_url(cls, feed_url: str, default_category: str = DEFAULT_CATEGORY) -> "EntryNormalizer":
        parts = urlsplit(feed_url)
        return cls(f"{parts.scheme or 'https'}://{parts.netloc}", default_category)

    def _absolutize(self, url: str) -> Optional[str]:
        if url.startswith("//"):
            return f"https:{url}"
        if ATTACH_IMAGE_PATTERN.match(url):
            return f"{self.origin}/{url.lstrip('/')}"
        if url.lower().startswith(("http://", "https://")):
            return url
        # Relative placeholders such as pic/trans.gif
        return None

    def extract_image(self, description: Optional[str]) -> Optional[str]:
        """Return the first usable image URL found in the description markup."""
        if not description or not description.strip():
            return None

        for match in IMG_SRC_PATTERN.finditer(description):
            url = self._absolutize(match.group(1).strip())
            if url:
                return url

        match = IMAGE_URL_PATTERN.search(description)
        if match:
            return self._absolutize(match.group(0))

        return None

    def _category(self, raw: Mapping[str, Any]) -> str:
        tags = raw.get("tags")
        for tag in tags if isinstance(tags, (list, tuple)) else []:
            term = tag.get("term") if isinstance(tag, Mapping) else None
            if term:
                return str(term)
        category = raw.get("category")
        return str(category) if category else self.default_category

    def _published(self, raw: Mapping[str, Any], fetched_at: datetime) -> datetime:
        for key in ("published_parsed", "updated_parsed"):
            parsed = raw.get(key)
            if parsed:
                try:
                    return datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError):
                    continue

        for key in ("published", "pubDate", "updated"):
            value = raw.get(key)
            if isinstance(value, datetime):
                return value
            if value:
                try:
                    return parsedate_to_datetime(str(value))
                except (TypeError, ValueError):
                    continue

        return fetched_at

    @staticmethod
    def _enclosure_length(raw: Mapping[str, Any]) -> Any:
        enclosures = raw.get("enclosures")
        for enclosure in enclosures if isinstance(enclosures, (list, tuple)) else []:
            if isinstance(enclosure, Mapping) and enclosure.get("length"):
                return enclosure.get("length")
        return raw.get("size")

    def normalize(self, raw: Mapping[str, Any], fetched_at: Optional[datetime] = None) -> FeedEntry:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        raw_title = _text(raw.get("title")) or DEFAULT_TITLE
        title = strip_html(raw_title) or DEFAULT_TITLE
        link = _text(raw.get("link"))
        description = _text(raw.get("description")) or _text(raw.get("summary"))
        guid = raw.get("id") or raw.get("guid") or link or title

        return FeedEntry(
            id=str(guid),
            title=title,
            link=link,
            image=self.extract_image(description),
            category=self._category(raw),
            uploader=extract_uploader(_text(raw.get("author"))),
            size=extract_size(raw_title, self._enclosure_length(raw)),
            published_at=self._published(raw, fetched_at),
        )
