"""
Exception types shared across ingestion, delivery and wiring.
"""
from typing import Optional


class FeedWatchError(Exception):
    """Base class for all feed watch errors."""


class FetchFailure(FeedWatchError):
    """The feed could not be retrieved or parsed. Retried on the next tick."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class DeliveryFailure(FeedWatchError):
    """A notification could not be delivered to a target."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Delivery to {target} failed: {reason}")


class InvalidTargetError(DeliveryFailure):
    """The target is unreachable or does not exist; retrying will not help."""


class TransientDeliveryError(DeliveryFailure):
    """A temporary failure (rate limit, network hiccup)."""

    def __init__(self, target: str, reason: str, retry_after: Optional[float] = None):
        super().__init__(target, reason)
        # Seconds the target asked us to wait before the next message
        self.retry_after = retry_after


class ConfigurationMissing(FeedWatchError):
    """A setting required to start the feed monitor is absent."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"Missing required setting: {setting}")
