"""
Module to contain base class for Delivery channels
"""
from abc import ABC, abstractmethod

from core.entities import FeedNotification


class DeliveryChannel(ABC):
    """
    Base interface for all delivery channels.
    """

    name: str

    @abstractmethod
    async def send(self, target: str, notification: FeedNotification) -> None:
        """
        Deliver one notification to a target.
        Must raise InvalidTargetError when the target cannot accept messages,
        and TransientDeliveryError for temporary failures (handled upstream).
        """
        raise NotImplementedError


def truncate_title(title: str, limit: int = 256) -> str:
    if len(title) > limit:
        return title[: limit - 6] + "..."
    return title
