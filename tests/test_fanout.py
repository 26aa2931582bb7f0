"""Tests for subscriber fan-out."""
import asyncio
from unittest.mock import AsyncMock, patch

from telegram.error import BadRequest

from conftest import RecordingChannel, build_entry
from core.entities import ChangedEntry, ChangeKind, Subscriber
from core.errors import TransientDeliveryError
from delivery.telegram_delivery import TelegramDelivery
from services.fanout import SubscriberFanout
from services.subscribers import StaticSubscriberStore, SubscriberStore


def _changes(*titles, kind=ChangeKind.NEW):
    return [ChangedEntry(entry=build_entry(str(i), title), kind=kind) for i, title in enumerate(titles)]


def _fanout(subscribers, channel, **kwargs):
    kwargs.setdefault("message_delay", 0)
    return SubscriberFanout(StaticSubscriberStore(subscribers), channel, **kwargs)


def test_filter_is_case_insensitive(channel):
    """A '1080p' filter matches '1080P' but not '720p'."""
    fanout = _fanout([Subscriber("chat-1", filter_pattern="1080p")], channel)

    report = asyncio.run(fanout.deliver(_changes("Show [1080P] BDMV", "Show [720p] BDMV")))

    assert channel.titles_for("chat-1") == ["Show [1080P] BDMV"]
    assert report.sent == 1


def test_absent_filter_uses_default(channel):
    fanout = _fanout(
        [Subscriber("all"), Subscriber("blank", filter_pattern="  ")],
        channel,
        default_filter="bdmv",
    )

    asyncio.run(fanout.deliver(_changes("[BDMV] One", "[DVDISO] Two")))

    assert channel.titles_for("all") == ["[BDMV] One"]
    assert channel.titles_for("blank") == ["[BDMV] One"]


def test_cap_limits_matches_per_subscriber(channel):
    fanout = _fanout([Subscriber("chat-1")], channel, max_per_tick=10)
    titles = [f"Entry {i}" for i in range(13)]

    report = asyncio.run(fanout.deliver(_changes(*titles)))

    assert channel.titles_for("chat-1") == titles[:10]
    assert report.dropped == 3


def test_invalid_pattern_matches_nothing_without_aborting(channel):
    fanout = _fanout(
        [Subscriber("broken", filter_pattern="([unclosed"), Subscriber("ok")],
        channel,
    )

    report = asyncio.run(fanout.deliver(_changes("A", "B")))

    assert channel.titles_for("broken") == []
    assert channel.titles_for("ok") == ["A", "B"]
    assert report.sent == 2


def test_failure_for_one_subscriber_does_not_block_others():
    channel = RecordingChannel(invalid={"gone"}, transient={"flaky"})
    fanout = _fanout([Subscriber("gone"), Subscriber("flaky"), Subscriber("good")], channel)

    report = asyncio.run(fanout.deliver(_changes("A", "B")))

    assert channel.titles_for("good") == ["A", "B"]
    # An invalid target stops after the first attempt; transient failures keep trying
    assert [t for t, _ in channel.attempts].count("gone") == 1
    assert [t for t, _ in channel.attempts].count("flaky") == 2
    assert report.sent == 2
    assert report.failed == 4


def test_unexpected_exception_is_contained():
    class ExplodingChannel(RecordingChannel):
        async def send(self, target, notification):
            if target == "boom":
                raise RuntimeError("kaboom")
            await super().send(target, notification)

    channel = ExplodingChannel()
    fanout = _fanout([Subscriber("boom"), Subscriber("good")], channel)

    report = asyncio.run(fanout.deliver(_changes("A")))

    assert channel.titles_for("good") == ["A"]
    assert report.failed == 1


def test_disabled_subscribers_are_skipped(channel):
    store = AsyncMock(spec=SubscriberStore)
    store.get_enabled_subscribers.return_value = [
        Subscriber("off", enabled=False),
        Subscriber(""),
        Subscriber("on"),
    ]
    fanout = SubscriberFanout(store, channel, message_delay=0)

    report = asyncio.run(fanout.deliver(_changes("A")))

    assert [t for t, _ in channel.sent] == ["on"]
    assert report.subscribers == 1


def test_store_failure_yields_no_deliveries(channel):
    store = AsyncMock(spec=SubscriberStore)
    store.get_enabled_subscribers.side_effect = ConnectionError("store down")
    fanout = SubscriberFanout(store, channel, message_delay=0)

    report = asyncio.run(fanout.deliver(_changes("A")))

    assert channel.sent == []
    assert report.sent == 0


def test_store_queried_once_per_call(channel):
    store = AsyncMock(spec=SubscriberStore)
    store.get_enabled_subscribers.return_value = [Subscriber("a"), Subscriber("b")]
    fanout = SubscriberFanout(store, channel, message_delay=0)

    asyncio.run(fanout.deliver(_changes("A", "B")))

    store.get_enabled_subscribers.assert_awaited_once()


def test_no_changes_skips_store(channel):
    store = AsyncMock(spec=SubscriberStore)
    fanout = SubscriberFanout(store, channel)

    asyncio.run(fanout.deliver([]))

    store.get_enabled_subscribers.assert_not_awaited()


def test_delay_between_consecutive_messages(channel):
    fanout = _fanout([Subscriber("chat-1")], channel, message_delay=1.0)

    with patch("services.fanout.asyncio.sleep", new=AsyncMock()) as sleep:
        asyncio.run(fanout.deliver(_changes("A", "B", "C")))

    assert sleep.await_count == 2
    sleep.assert_awaited_with(1.0)


def test_notification_carries_edited_flag(channel):
    fanout = _fanout([Subscriber("chat-1")], channel)

    asyncio.run(fanout.deliver(_changes("A", kind=ChangeKind.EDITED)))

    _, notification = channel.sent[0]
    assert notification.edited is True
    assert notification.title == "A"


def test_concurrent_mode_delivers_to_everyone(channel):
    fanout = _fanout([Subscriber("a"), Subscriber("b")], channel, concurrent=True)

    report = asyncio.run(fanout.deliver(_changes("X", "Y")))

    assert channel.titles_for("a") == ["X", "Y"]
    assert channel.titles_for("b") == ["X", "Y"]
    assert report.sent == 4


def test_broken_image_does_not_stop_later_entries():
    """Entries after one with an unfetchable cover image are still delivered."""
    bot = AsyncMock()
    bot.send_photo.side_effect = BadRequest("Wrong file identifier/http url specified")
    changes = [
        ChangedEntry(entry=build_entry("a", "A", image="https://img.example.com/gone.jpg"), kind=ChangeKind.NEW),
        ChangedEntry(entry=build_entry("b", "B"), kind=ChangeKind.NEW),
        ChangedEntry(entry=build_entry("c", "C"), kind=ChangeKind.NEW),
    ]
    fanout = _fanout([Subscriber("123")], TelegramDelivery(bot_token="token", bot=bot))

    report = asyncio.run(fanout.deliver(changes))

    assert bot.send_message.await_count == 3
    assert report.sent == 3
    assert report.failed == 0


def test_rate_limited_target_waits_before_next_send():
    class FloodedChannel(RecordingChannel):
        async def send(self, target, notification):
            self.attempts.append((target, notification))
            if len(self.attempts) == 1:
                raise TransientDeliveryError(target, "flood control", retry_after=12.0)
            self.sent.append((target, notification))

    channel = FloodedChannel()
    fanout = _fanout([Subscriber("chat-1")], channel, message_delay=1.0)

    with patch("services.fanout.asyncio.sleep", new=AsyncMock()) as sleep:
        report = asyncio.run(fanout.deliver(_changes("A", "B", "C")))

    assert [c.args[0] for c in sleep.await_args_list] == [12.0, 1.0]
    assert channel.titles_for("chat-1") == ["B", "C"]
    assert report.failed == 1
