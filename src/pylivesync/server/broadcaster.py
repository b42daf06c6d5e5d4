"""Topic broadcaster: fan-out of discrete messages to topic subscribers.

Each connected process is represented by a :class:`Subscriber` owning an
``asyncio.Queue``.  Publishing only enqueues, so the publisher never waits
on a subscriber and a slow subscriber never delays the others.  Messages
published before a subscriber joined are not replayed.

Must be used from a single event loop; ``asyncio.Queue`` is not
thread-safe.  Bridge foreign threads with ``loop.call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from pylivesync._redact import redact_for_log

_logger = logging.getLogger(__name__)


def _new_subscriber_id() -> str:
    return secrets.token_hex(8)


@dataclass(eq=False, slots=True)
class Subscriber:
    """One connected process receiving topic messages.

    Attributes:
        subscriber_id: Identifier used in logs.
        queue: Per-subscriber inbox; per-topic publish order is preserved.

    """

    subscriber_id: str = field(default_factory=_new_subscriber_id)
    queue: asyncio.Queue[Any] = field(default_factory=asyncio.Queue)

    async def get(self) -> Any:
        """Wait for the next message."""
        return await self.queue.get()

    def get_nowait(self) -> Any:
        return self.queue.get_nowait()

    def drain(self) -> list[Any]:
        """Return every queued message without waiting."""
        messages: list[Any] = []
        while True:
            try:
                messages.append(self.queue.get_nowait())
            except asyncio.QueueEmpty:
                return messages

    async def messages(self) -> AsyncIterator[Any]:
        """Yield messages as they arrive until the consuming task is cancelled."""
        while True:
            yield await self.queue.get()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self.messages()


class TopicBroadcaster:
    """Publish/subscribe over named topics.

    ``subscribe``/``unsubscribe`` are idempotent.  A topic exists only
    while it has at least one subscriber.
    """

    def __init__(self, *, queue_size: int = 0) -> None:
        self._queue_size = queue_size
        # dict-as-ordered-set: delivery order follows subscription order.
        self._subscribers: dict[str, dict[Subscriber, None]] = {}

    def new_subscriber(self, subscriber_id: str | None = None) -> Subscriber:
        """Create a subscriber whose queue honours the configured bound."""
        return Subscriber(
            subscriber_id=subscriber_id or _new_subscriber_id(),
            queue=asyncio.Queue(maxsize=self._queue_size),
        )

    @property
    def subscriber_count(self) -> int:
        """Total subscriptions across all topics."""
        return sum(len(subs) for subs in self._subscribers.values())

    def subscribe(self, topic: str, subscriber: Subscriber) -> None:
        self._subscribers.setdefault(topic, {})[subscriber] = None

    def unsubscribe(self, topic: str, subscriber: Subscriber) -> None:
        subs = self._subscribers.get(topic)
        if subs is None:
            return
        subs.pop(subscriber, None)
        if not subs:
            del self._subscribers[topic]

    def unsubscribe_all(self, subscriber: Subscriber) -> int:
        """Remove *subscriber* from every topic; returns how many it left."""
        left = 0
        for topic in list(self._subscribers):
            if subscriber in self._subscribers[topic]:
                self.unsubscribe(topic, subscriber)
                left += 1
        return left

    def subscribers(self, topic: str) -> tuple[Subscriber, ...]:
        """Snapshot of the subscribers of *topic*, in subscription order."""
        return tuple(self._subscribers.get(topic, ()))

    def topics(self) -> frozenset[str]:
        return frozenset(self._subscribers)

    def is_subscribed(self, topic: str, subscriber: Subscriber) -> bool:
        return subscriber in self._subscribers.get(topic, {})

    def publish(self, topic: str, message: Any) -> int:
        """Deliver *message* to every current subscriber of *topic*.

        Returns:
            Number of subscribers the message was enqueued for.

        """
        return self._fan_out(topic, message, sender=None)

    def publish_from(self, sender: Subscriber, topic: str, message: Any) -> int:
        """Like :meth:`publish` but skips *sender*."""
        return self._fan_out(topic, message, sender=sender)

    def send(self, subscriber: Subscriber, message: Any, *, topic: str | None = None) -> int:
        """Deliver *message* to one subscriber only.

        Returns 1 when queued and 0 when the subscriber's queue is full.
        """
        if not self._deliver(subscriber, topic, message):
            return 0
        _logger.debug("Sent topic=%s to=%s", topic, subscriber.subscriber_id)
        return 1

    def _deliver(self, subscriber: Subscriber, topic: str | None, message: Any) -> bool:
        try:
            subscriber.queue.put_nowait(message)
        except asyncio.QueueFull:
            _logger.warning(
                "Dropping message for slow subscriber=%s topic=%s",
                subscriber.subscriber_id,
                topic,
            )
            return False
        return True

    def _fan_out(self, topic: str, message: Any, *, sender: Subscriber | None) -> int:
        delivered = 0
        for subscriber in self.subscribers(topic):
            if subscriber is sender:
                continue
            if self._deliver(subscriber, topic, message):
                delivered += 1
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Published topic=%s delivered=%d message=%s",
                topic,
                delivered,
                redact_for_log(message),
            )
        return delivered
