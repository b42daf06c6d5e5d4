"""Authoritative-side helpers that turn changes into client events.

:class:`StoreSyncPublisher` is what server code calls after it has
committed a change: it builds the typed client event and publishes it on
the topic through the :class:`TopicBroadcaster`.

Usage::

    publisher = StoreSyncPublisher(broadcaster)

    # tell every client in the room to append the new message
    publisher.broadcast_store_sync("room:1", "messages", "append", data=message)

    # confirm / reject the creator's optimistic item
    publisher.reconcile_optimistic("room:1", "todos", temp_id, todo)
    publisher.rollback_optimistic("room:1", "todos", temp_id, reason="invalid")
"""

from __future__ import annotations

import logging
from typing import Any

from pylivesync.exceptions import ProtocolError
from pylivesync.models._base import ItemId
from pylivesync.models.events import (
    PresenceSyncEvent,
    StoreReconcileEvent,
    StoreRollbackEvent,
    StoreSyncEvent,
)
from pylivesync.models.mutation import _MISSING, StoreAction, StoreMutation, build_mutation
from pylivesync.server.broadcaster import Subscriber, TopicBroadcaster
from pylivesync.server.presence import PresenceTracker

_logger = logging.getLogger(__name__)


def track_user(
    tracker: PresenceTracker,
    topic: str,
    user: dict[str, Any],
    meta: dict[str, Any] | None = None,
    *,
    ref: str | None = None,
) -> str:
    """Track a user record, deriving ``user_id``/``user_name`` metadata.

    The display name falls back from ``name`` to ``email`` to
    ``"Anonymous"``.
    """
    user_id = str(user["id"])
    entry = dict(meta or {})
    entry["user_id"] = user_id
    entry["user_name"] = user.get("name") or user.get("email") or "Anonymous"
    return tracker.track(topic, user_id, entry, ref=ref)


class StoreSyncPublisher:
    """Publishes store sync, reconcile, rollback and presence events.

    With ``sequenced=True`` every store mutation is stamped with a
    monotonically increasing per-topic ``seq`` so registries can drop
    repeated deliveries.
    """

    def __init__(self, broadcaster: TopicBroadcaster, *, sequenced: bool = False) -> None:
        self._broadcaster = broadcaster
        self._sequenced = sequenced
        self._sequences: dict[str, int] = {}

    def _next_seq(self, topic: str) -> int:
        seq = self._sequences.get(topic, 0) + 1
        self._sequences[topic] = seq
        return seq

    def publish_mutation(self, topic: str, mutation: StoreMutation) -> int:
        """Publish an already-built mutation as a ``store:sync`` event."""
        if self._sequenced and mutation.seq is None:
            mutation = mutation.with_seq(self._next_seq(topic))
        return self._broadcaster.publish(topic, StoreSyncEvent.from_mutation(mutation))

    def broadcast_store_sync(
        self,
        topic: str,
        store: str,
        action: StoreAction | str,
        *,
        data: Any = _MISSING,
        id: ItemId | None = None,  # noqa: A002
        changes: dict[str, Any] | None = None,
    ) -> int:
        """Build a mutation from server-side fields and publish it.

        ``data`` is required for ``set``/``append``/``prepend``; ``id``
        (and ``changes`` for ``update``) for the others.
        """
        try:
            act = StoreAction(action)
        except ValueError as exc:
            raise ProtocolError(f"Unknown store action: {action!r}", store=store, action=str(action)) from exc
        if act in (StoreAction.SET, StoreAction.APPEND, StoreAction.PREPEND):
            mutation = build_mutation(store, act, data=data)
        else:
            mutation = build_mutation(store, act, id=id, changes=changes)
        return self.publish_mutation(topic, mutation)

    def reconcile_optimistic(self, topic: str, store: str, temp_id: ItemId, item: Any) -> int:
        """Tell clients to replace the element tagged *temp_id* with *item*."""
        event = StoreReconcileEvent(store=store, temp_id=temp_id, item=item)
        return self._broadcaster.publish(topic, event)

    def rollback_optimistic(
        self,
        topic: str,
        store: str,
        temp_id: ItemId,
        reason: str | None = None,
    ) -> int:
        """Tell clients to drop the element tagged *temp_id*."""
        event = StoreRollbackEvent(store=store, temp_id=temp_id, reason=reason)
        return self._broadcaster.publish(topic, event)

    def push_presence(
        self,
        topic: str,
        tracker: PresenceTracker,
        *,
        to: Subscriber | None = None,
    ) -> int:
        """Send a full ``presence:sync`` snapshot of *topic*.

        With ``to`` the snapshot goes only to that subscriber (typically a
        client that just joined); otherwise it is published on *topic*.
        """
        event = PresenceSyncEvent(topic=topic, users=tracker.list(topic))
        if to is None:
            return self._broadcaster.publish(topic, event)
        _logger.debug("Pushing presence snapshot topic=%s to=%s users=%d", topic, to.subscriber_id, len(event.users))
        return self._broadcaster.send(to, event, topic=topic)
