"""Client mirror of a topic's presence, plus a typing indicator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from pylivesync.client.container import Container
from pylivesync.models.presence import PresenceUser

_logger = logging.getLogger(__name__)


def _as_user(user: PresenceUser | dict[str, Any]) -> PresenceUser:
    if isinstance(user, PresenceUser):
        return user
    return PresenceUser.model_validate(user)


class PresenceStore(Container[list[PresenceUser]]):
    """Users present in one topic, as last reported by the server.

    ``presence:sync`` replaces the list; join/leave/update events patch it.
    """

    def __init__(self, topic: str) -> None:
        super().__init__([])
        self.topic = topic

    def sync(self, users: Iterable[PresenceUser | dict[str, Any]]) -> bool:
        try:
            snapshot = [_as_user(user) for user in users]
        except ValidationError as exc:
            _logger.warning("Dropping presence snapshot topic=%s: %s", self.topic, exc)
            return False
        self.set(snapshot)
        return True

    def join(self, user: PresenceUser | dict[str, Any]) -> bool:
        try:
            joined = _as_user(user)
        except ValidationError as exc:
            _logger.warning("Dropping presence join topic=%s: %s", self.topic, exc)
            return False
        if self.is_online(joined.id):
            _logger.debug("Ignoring join for present user topic=%s user=%s", self.topic, joined.id)
            return False
        self.set([*self.value, joined])
        return True

    def leave(self, user_id: str) -> bool:
        if not self.is_online(user_id):
            return False
        self.set([user for user in self.value if user.id != user_id])
        return True

    def update_user(self, user_id: str, meta: dict[str, Any]) -> bool:
        """Merge *meta* into the user's entry.

        Unknown users are ignored. Metadata that cannot describe a user is
        dropped with a warning and the entry is left as it was.
        """
        updated: list[PresenceUser] = []
        found = False
        for user in self.value:
            if user.id == user_id:
                merged = {**user.model_dump(), **meta, "id": user_id}
                try:
                    user = PresenceUser.model_validate(merged)
                except ValidationError as exc:
                    _logger.warning("Dropping presence update topic=%s user=%s: %s", self.topic, user_id, exc)
                    return False
                found = True
            updated.append(user)
        if not found:
            _logger.debug("Ignoring update for absent user topic=%s user=%s", self.topic, user_id)
            return False
        self.set(updated)
        return True

    def is_online(self, user_id: str) -> bool:
        return any(user.id == user_id for user in self.value)

    @property
    def users(self) -> list[PresenceUser]:
        return list(self.value)

    def typing_users(self) -> list[PresenceUser]:
        return [user for user in self.value if user.typing]

    def count(self) -> int:
        return len(self.value)


class TypingIndicator:
    """Turns keystrokes into start/stop typing notifications.

    ``on_start`` fires on the first :meth:`on_input` after a quiet period;
    ``on_stop`` fires once input has been silent for ``debounce`` seconds
    or when :meth:`stop` is called.  Callbacks may be plain functions or
    coroutine functions.
    """

    def __init__(
        self,
        on_start: Callable[[], Any] | None = None,
        on_stop: Callable[[], Any] | None = None,
        *,
        debounce: float = 1.0,
    ) -> None:
        self._on_start = on_start
        self._on_stop = on_stop
        self._debounce = debounce
        self._typing = False
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def is_typing(self) -> bool:
        return self._typing

    def on_input(self) -> None:
        loop = asyncio.get_running_loop()
        if not self._typing:
            self._typing = True
            self._invoke(self._on_start)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._debounce, self.stop)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._typing:
            self._typing = False
            self._invoke(self._on_stop)

    def close(self) -> None:
        """Cancel the pending stop timer without notifying."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._typing = False

    def _invoke(self, callback: Callable[[], Any] | None) -> None:
        if callback is None:
            return
        try:
            result = callback()
        except Exception:
            _logger.debug("Typing callback failed", exc_info=True)
            return
        if asyncio.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(self._await(result))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _await(coro: Any) -> None:
        try:
            await coro
        except Exception:
            _logger.debug("Typing callback failed", exc_info=True)
