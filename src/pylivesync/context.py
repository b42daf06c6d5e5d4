"""Per-session synchronization context.

A :class:`SyncContext` owns everything one connected client needs: the
store registry, the presence mirrors, and the debouncers and typing
indicators created for it.  Closing the context releases all of them.

Usage::

    async with SyncContext(SyncConfig.from_env()) as ctx:
        todos = ctx.create_realtime_store("todos", sort=lambda t: t["position"])
        room = ctx.create_presence("room:1")

        async for message in subscriber:
            ctx.dispatch(message)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from pylivesync._redact import redact_for_log
from pylivesync.client.container import Container
from pylivesync.client.debounce import Debouncer
from pylivesync.client.optimistic import OptimisticList, OptimisticStore
from pylivesync.client.presence import PresenceStore, TypingIndicator
from pylivesync.client.protocol import GetId, MergeFn
from pylivesync.client.realtime import MERGE_STRATEGIES, RealtimeStore, server_wins
from pylivesync.client.registry import ClientStoreRegistry
from pylivesync.config import SyncConfig
from pylivesync.exceptions import ProtocolError
from pylivesync.models.events import (
    PresenceJoinEvent,
    PresenceLeaveEvent,
    PresenceSyncEvent,
    StoreReconcileEvent,
    StoreRollbackEvent,
    StoreSyncEvent,
    parse_client_event,
)
from pylivesync.models.presence import PresenceDiffEvent, PresenceEventName, PresenceUser
from pylivesync.server.broadcaster import Subscriber

_logger = logging.getLogger(__name__)


class SyncContext:
    """Registry, presence mirrors and timers for one client session."""

    def __init__(self, config: SyncConfig | None = None) -> None:
        self.config = config or SyncConfig()
        self.registry = ClientStoreRegistry(
            drop_stale_sequences=self.config.drop_stale_sequences,
            log_max_string=self.config.log_max_string,
        )
        self._presence: dict[str, PresenceStore] = {}
        self._debouncers: list[Debouncer] = []
        self._typing: list[TypingIndicator] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def register_store(self, name: str, container: Container[Any], *, get_id: GetId | None = None) -> Container[Any]:
        return self.registry.register_store(name, container, get_id=get_id)

    def unregister_store(self, name: str) -> bool:
        return self.registry.unregister_store(name)

    def reset_sequences(self, name: str | None = None) -> None:
        """Accept sequence numbers from 1 again, e.g. after a server restart."""
        self.registry.reset_sequence(name)

    def get_store(self, name: str) -> Container[Any] | None:
        return self.registry.get_store(name)

    def create_store(self, name: str, initial: Any = None) -> OptimisticStore[Any]:
        """Create and register an optimistic store holding any value."""
        store: OptimisticStore[Any] = OptimisticStore(initial, id_prefix=self.config.operation_id_prefix)
        self.registry.register_store(name, store)
        return store

    def create_list(
        self,
        name: str,
        initial: list[Any] | None = None,
        *,
        get_id: GetId | None = None,
    ) -> OptimisticList:
        store = OptimisticList(initial, get_id=get_id, id_prefix=self.config.operation_id_prefix)
        self.registry.register_store(name, store)
        return store

    def create_realtime_store(
        self,
        name: str,
        initial: list[Any] | None = None,
        *,
        get_id: GetId | None = None,
        sort: Callable[[Any], Any] | None = None,
        merge: MergeFn | str = server_wins,
    ) -> RealtimeStore:
        """Create and register a :class:`RealtimeStore`.

        ``merge`` may name one of :data:`MERGE_STRATEGIES`.
        """
        if isinstance(merge, str):
            try:
                merge = MERGE_STRATEGIES[merge]
            except KeyError:
                raise ValueError(f"Unknown merge strategy: {merge!r}") from None
        kwargs: dict[str, Any] = {"sort": sort, "merge": merge}
        if get_id is not None:
            kwargs["get_id"] = get_id
        store = RealtimeStore(initial, **kwargs)
        self.registry.register_store(name, store)
        return store

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    def create_presence(self, topic: str) -> PresenceStore:
        """Return the presence mirror for *topic*, creating it on first use."""
        store = self._presence.get(topic)
        if store is None:
            store = self._presence[topic] = PresenceStore(topic)
        return store

    def get_presence(self, topic: str) -> PresenceStore | None:
        return self._presence.get(topic)

    def remove_presence(self, topic: str) -> bool:
        return self._presence.pop(topic, None) is not None

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def debounce(self, action: Callable[..., Any], delay: float | None = None) -> Debouncer:
        """Create a debouncer that is cancelled when the context closes."""
        debouncer = Debouncer(action, self.config.debounce_delay if delay is None else delay)
        self._debouncers.append(debouncer)
        return debouncer

    def typing_indicator(
        self,
        on_start: Callable[[], Any] | None = None,
        on_stop: Callable[[], Any] | None = None,
        *,
        debounce: float | None = None,
    ) -> TypingIndicator:
        indicator = TypingIndicator(
            on_start,
            on_stop,
            debounce=self.config.typing_debounce if debounce is None else debounce,
        )
        self._typing.append(indicator)
        return indicator

    # ------------------------------------------------------------------
    # Event routing
    # ------------------------------------------------------------------

    def dispatch(self, event: Any) -> bool:
        """Route one client event to its store or presence mirror.

        Accepts typed events or raw ``{"event": ...}`` dicts.  Returns
        True when a target was updated.  Invalid events and unknown
        targets are logged and dropped.
        """
        try:
            parsed = parse_client_event(event)
        except ProtocolError as exc:
            _logger.warning(
                "Dropping invalid client event: %s payload=%s",
                exc,
                redact_for_log(event, max_string=self.config.log_max_string),
            )
            return False

        if isinstance(parsed, StoreSyncEvent):
            try:
                mutation = parsed.mutation
            except ProtocolError as exc:
                _logger.warning("Dropping invalid store:sync event store=%s: %s", parsed.store, exc)
                return False
            return self.registry.apply(mutation)

        if isinstance(parsed, StoreReconcileEvent):
            return self.registry.reconcile(parsed.store, parsed.temp_id, parsed.item)

        if isinstance(parsed, StoreRollbackEvent):
            return self.registry.rollback(parsed.store, parsed.temp_id, parsed.reason)

        presence = self._presence.get(parsed.topic)
        if presence is None:
            _logger.warning("Dropping %s for unknown presence topic=%s", parsed.event, parsed.topic)
            return False

        if isinstance(parsed, PresenceSyncEvent):
            return presence.sync(parsed.users)
        if isinstance(parsed, PresenceJoinEvent):
            return presence.join(parsed.user)
        if isinstance(parsed, PresenceLeaveEvent):
            return presence.leave(parsed.user_id)
        return presence.update_user(parsed.user_id, parsed.meta)

    def handle_presence_diff(self, topic: str, event: PresenceDiffEvent | dict[str, Any]) -> bool:
        """Apply a server ``presence_join``/``presence_leave`` event for *topic*."""
        if not isinstance(event, PresenceDiffEvent):
            try:
                event = PresenceDiffEvent.model_validate(event)
            except ValidationError as exc:
                _logger.warning(
                    "Dropping invalid presence diff topic=%s: %s payload=%s",
                    topic,
                    exc,
                    redact_for_log(event, max_string=self.config.log_max_string),
                )
                return False
        presence = self._presence.get(topic)
        if presence is None:
            _logger.warning("Dropping %s for unknown presence topic=%s", event.event, topic)
            return False
        if event.event == PresenceEventName.JOIN:
            try:
                user = PresenceUser.from_meta(event.user_id, event.meta or {})
            except ValidationError as exc:
                _logger.warning("Dropping presence join topic=%s user=%s: %s", topic, event.user_id, exc)
                return False
            return presence.join(user)
        return presence.leave(event.user_id)

    async def consume(self, subscriber: Subscriber, *, presence_of: str | None = None) -> None:
        """Dispatch every message delivered to *subscriber* until cancelled.

        Presence join/leave events carry no topic of their own; pass
        ``presence_of`` when *subscriber* listens on ``presence:{topic}``.
        A message that fails to apply is logged and skipped.
        """
        async for message in subscriber:
            try:
                if isinstance(message, PresenceDiffEvent):
                    if presence_of is None:
                        _logger.debug("Ignoring presence diff without a presence topic user=%s", message.user_id)
                        continue
                    self.handle_presence_diff(presence_of, message)
                else:
                    self.dispatch(message)
            except Exception:
                _logger.warning("Failed to apply message for subscriber=%s", subscriber.subscriber_id, exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Cancel timers and unregister every store and presence mirror."""
        for debouncer in self._debouncers:
            debouncer.close()
        for indicator in self._typing:
            indicator.close()
        self._debouncers.clear()
        self._typing.clear()
        self.registry.clear()
        self._presence.clear()
        self._closed = True

    def __enter__(self) -> SyncContext:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    async def __aenter__(self) -> SyncContext:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()
