"""Reactive container primitive.

A :class:`Container` holds one current value and notifies subscribers
synchronously on every write.  A write is a single step: subscribers never
observe a half-applied value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

_logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class Container(Generic[T]):
    """Reactive value with get/set/subscribe.

    ``subscribe`` calls the callback immediately with the current value
    and again after every write.  Subclasses may override
    :meth:`_normalize` to post-process each written value (e.g. sorting).
    """

    def __init__(self, initial: T) -> None:
        self._subscribers: dict[int, Callable[[T], None]] = {}
        self._next_token = 0
        self._value: T = self._normalize(initial)

    def _normalize(self, value: T) -> T:
        return value

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        self.set(new_value)

    def get(self) -> T:
        return self._value

    def set(self, new_value: T) -> None:
        self._value = self._normalize(new_value)
        self._notify()

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = callback
        self._call(callback)

        def _unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _notify(self) -> None:
        for callback in list(self._subscribers.values()):
            self._call(callback)

    def _call(self, callback: Callable[[T], None]) -> None:
        try:
            callback(self._value)
        except Exception:
            _logger.debug("Container subscriber failed", exc_info=True)
