from __future__ import annotations

import asyncio
import logging

import pytest

from pylivesync.server.broadcaster import Subscriber, TopicBroadcaster


def test_publish_reaches_current_subscribers_only() -> None:
    broadcaster = TopicBroadcaster()
    early, late = Subscriber(), Subscriber()

    broadcaster.subscribe("room:1", early)
    assert broadcaster.publish("room:1", "first") == 1
    broadcaster.subscribe("room:1", late)
    assert broadcaster.publish("room:1", "second") == 2

    assert early.drain() == ["first", "second"]
    assert late.drain() == ["second"]


def test_subscribe_and_unsubscribe_are_idempotent() -> None:
    broadcaster = TopicBroadcaster()
    sub = Subscriber()

    broadcaster.subscribe("room:1", sub)
    broadcaster.subscribe("room:1", sub)
    assert broadcaster.subscriber_count == 1
    assert broadcaster.publish("room:1", "x") == 1

    broadcaster.unsubscribe("room:1", sub)
    broadcaster.unsubscribe("room:1", sub)
    assert broadcaster.topics() == frozenset()
    assert broadcaster.publish("room:1", "y") == 0


def test_per_topic_order_is_preserved() -> None:
    broadcaster = TopicBroadcaster()
    sub = Subscriber()
    broadcaster.subscribe("a", sub)
    broadcaster.subscribe("b", sub)

    for n in range(5):
        broadcaster.publish("a", ("a", n))
        broadcaster.publish("b", ("b", n))

    messages = sub.drain()
    assert [n for topic, n in messages if topic == "a"] == list(range(5))
    assert [n for topic, n in messages if topic == "b"] == list(range(5))


def test_publish_from_skips_sender() -> None:
    broadcaster = TopicBroadcaster()
    sender, other = Subscriber(), Subscriber()
    broadcaster.subscribe("room", sender)
    broadcaster.subscribe("room", other)

    assert broadcaster.publish_from(sender, "room", "typing") == 1
    assert sender.drain() == []
    assert other.drain() == ["typing"]


def test_unsubscribe_all_removes_every_topic() -> None:
    broadcaster = TopicBroadcaster()
    sub, keeper = Subscriber(), Subscriber()
    for topic in ("a", "b", "c"):
        broadcaster.subscribe(topic, sub)
    broadcaster.subscribe("a", keeper)

    assert broadcaster.unsubscribe_all(sub) == 3
    assert broadcaster.topics() == frozenset({"a"})
    assert broadcaster.subscribers("a") == (keeper,)


def test_full_subscriber_drops_message_without_blocking_others(caplog: pytest.LogCaptureFixture) -> None:
    broadcaster = TopicBroadcaster(queue_size=1)
    slow = broadcaster.new_subscriber("slow")
    fast = broadcaster.new_subscriber("fast")
    broadcaster.subscribe("room", slow)
    broadcaster.subscribe("room", fast)

    broadcaster.publish("room", 1)
    fast.drain()
    with caplog.at_level(logging.WARNING, logger="pylivesync.server.broadcaster"):
        delivered = broadcaster.publish("room", 2)

    assert delivered == 1
    assert slow.drain() == [1]
    assert fast.drain() == [2]
    assert any("slow" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_subscriber_async_iteration() -> None:
    broadcaster = TopicBroadcaster()
    sub = broadcaster.new_subscriber()
    broadcaster.subscribe("room", sub)
    received: list[str] = []

    async def consume() -> None:
        async for message in sub:
            received.append(message)

    task = asyncio.create_task(consume())
    broadcaster.publish("room", "a")
    broadcaster.publish("room", "b")
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert received == ["a", "b"]
    assert await asyncio.wait_for(_next_after_publish(broadcaster, sub), timeout=1) == "c"


async def _next_after_publish(broadcaster: TopicBroadcaster, sub: Subscriber) -> str:
    broadcaster.publish("room", "c")
    return await sub.get()
