import html
import logging
from datetime import timedelta

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import (
    BadRequest,
    ChatMigrated,
    Forbidden,
    NetworkError,
    RetryAfter,
    TelegramError,
)

from core.entities import FeedNotification
from core.errors import InvalidTargetError, TransientDeliveryError
from delivery.base import DeliveryChannel, truncate_title

logger = logging.getLogger(__name__)

# BadRequest messages that are about the chat itself rather than the content
CHAT_ERROR_MARKERS = (
    "chat not found",
    "chat_id is empty",
    "user not found",
    "peer_id_invalid",
    "group chat was upgraded",
    "bot was kicked",
    "not enough rights",
    "have no rights to send",
    "need administrator rights",
)


def is_chat_error(error: BadRequest) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in CHAT_ERROR_MARKERS)


def _seconds(retry_after) -> float:
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


def format_message(notification: FeedNotification, feed_label: str = "Feed Watch") -> str:
    title = html.escape(truncate_title(notification.title))
    if notification.link:
        title = f'<a href="{html.escape(notification.link, quote=True)}">{title}</a>'

    footer = f"📝 Edited · {feed_label}" if notification.edited else feed_label
    lines = [
        f"<b>{title}</b>",
        "",
        f"<b>Category:</b> {html.escape(notification.category or '-')}",
        f"<b>Size:</b> {html.escape(notification.size or 'Unknown')}",
        f"<b>Uploader:</b> {html.escape(notification.uploader)}",
        f"<b>Published:</b> {notification.published_at.strftime('%Y-%m-%d %H:%M %Z').strip()}",
        "",
        f"<i>{html.escape(footer)}</i>",
    ]
    return "\n".join(lines)


class TelegramDelivery(DeliveryChannel):
    name = "telegram"

    def __init__(self, bot_token: str, feed_label: str = "Feed Watch", bot: Bot = None):
        self.bot = bot or Bot(token=bot_token)
        self.feed_label = feed_label

    async def _send_photo(self, target: str, notification: FeedNotification, text: str) -> bool:
        """Try the photo form; False when Telegram rejects the image or caption."""
        try:
            await self.bot.send_photo(
                chat_id=target,
                photo=notification.image,
                caption=text,
                parse_mode=ParseMode.HTML,
            )
            return True
        except BadRequest as e:
            if is_chat_error(e):
                raise
            logger.warning(f"Photo rejected for {target}, sending text only: {e}")
            return False

    async def send(self, target: str, notification: FeedNotification) -> None:
        text = format_message(notification, self.feed_label)

        try:
            if notification.image and await self._send_photo(target, notification, text):
                return
            await self.bot.send_message(
                chat_id=target,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except (Forbidden, ChatMigrated) as e:
            raise InvalidTargetError(target, str(e)) from e
        except BadRequest as e:
            if is_chat_error(e):
                raise InvalidTargetError(target, str(e)) from e
            raise TransientDeliveryError(target, str(e)) from e
        except RetryAfter as e:
            raise TransientDeliveryError(target, str(e), retry_after=_seconds(e.retry_after)) from e
        except (NetworkError, TelegramError) as e:
            raise TransientDeliveryError(target, str(e)) from e
