"""Per-topic presence registry with join/leave diffing.

This is the only component allowed to mutate presence entries.  Every
change goes through :meth:`PresenceTracker._mutate`, which snapshots the
previous generation, applies the change, diffs, and broadcasts in one
synchronous step, so two writers can never interleave inside one entry.

A user may be tracked from several connections (``ref``).  Listings
collapse them into one entry using the most recently written metadata.
"""

from __future__ import annotations

import copy
import itertools
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pylivesync._redact import redact_for_log
from pylivesync.models.presence import (
    PresenceDiff,
    PresenceDiffEvent,
    PresenceEventName,
    PresenceUser,
    presence_topic,
)
from pylivesync.server.broadcaster import Subscriber, TopicBroadcaster

_logger = logging.getLogger(__name__)

MetaUpdate = dict[str, Any] | Callable[[dict[str, Any]], dict[str, Any]]


@dataclass(slots=True)
class _Connection:
    meta: dict[str, Any]
    written: int


class PresenceTracker:
    """Tracks who is present in each topic and broadcasts membership changes.

    Join and leave events are published as :class:`PresenceDiffEvent` on
    ``presence:{topic}``.  Metadata-only changes publish nothing but are
    reported, with joins and leaves, to the optional ``on_diff`` listener.
    """

    def __init__(
        self,
        broadcaster: TopicBroadcaster,
        *,
        clock: Callable[[], float] = time.time,
        on_diff: Callable[[PresenceDiff], None] | None = None,
    ) -> None:
        self._broadcaster = broadcaster
        self._clock = clock
        self._on_diff = on_diff
        self._write_counter = itertools.count(1)
        # topic -> user_id -> ref -> connection
        self._topics: dict[str, dict[str, dict[str, _Connection]]] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def track(
        self,
        topic: str,
        user_id: str,
        meta: dict[str, Any] | None = None,
        *,
        ref: str | None = None,
    ) -> str:
        """Register a connection of *user_id* in *topic* and return its ref.

        ``online_at`` is stamped from the tracker clock.  Tracking an
        existing ref again replaces its metadata.
        """
        conn_ref = ref or secrets.token_hex(8)
        entry = dict(meta or {})
        entry["online_at"] = self._clock()

        def _apply() -> None:
            users = self._topics.setdefault(topic, {})
            users.setdefault(user_id, {})[conn_ref] = _Connection(
                meta=copy.deepcopy(entry),
                written=next(self._write_counter),
            )

        self._mutate(topic, _apply)
        return conn_ref

    def update(
        self,
        topic: str,
        user_id: str,
        meta: MetaUpdate,
        *,
        ref: str | None = None,
    ) -> bool:
        """Merge *meta* into the metadata of a tracked user.

        A dict is merged as a map union (its keys win).  A callable
        receives a copy of the existing metadata and returns the full
        replacement.  With ``ref=None`` every connection of the user is
        updated.

        Returns:
            ``False`` when the user (or ref) is not tracked in *topic*.

        """
        conns = self._topics.get(topic, {}).get(user_id)
        if not conns or (ref is not None and ref not in conns):
            _logger.debug("Presence update for untracked user=%s topic=%s", user_id, topic)
            return False

        targets = [ref] if ref is not None else list(conns)

        def _apply() -> None:
            for target in targets:
                current = conns[target].meta
                if callable(meta):
                    merged = dict(meta(copy.deepcopy(current)))
                else:
                    merged = {**current, **copy.deepcopy(meta)}
                conns[target] = _Connection(meta=merged, written=next(self._write_counter))

        self._mutate(topic, _apply)
        return True

    def untrack(self, topic: str, user_id: str, *, ref: str | None = None) -> bool:
        """Remove one connection (or all connections) of *user_id* from *topic*."""
        conns = self._topics.get(topic, {}).get(user_id)
        if not conns or (ref is not None and ref not in conns):
            return False

        def _apply() -> None:
            if ref is None:
                conns.clear()
            else:
                conns.pop(ref, None)
            self._prune(topic, user_id)

        self._mutate(topic, _apply)
        return True

    def untrack_all(self, ref: str) -> int:
        """Remove connection *ref* from every topic (connection teardown)."""
        removed = 0
        for topic, users in list(self._topics.items()):
            for user_id, conns in list(users.items()):
                if ref in conns and self.untrack(topic, user_id, ref=ref):
                    removed += 1
        return removed

    def _prune(self, topic: str, user_id: str) -> None:
        users = self._topics.get(topic)
        if users is None:
            return
        if not users.get(user_id):
            users.pop(user_id, None)
        if not users:
            del self._topics[topic]

    def _mutate(self, topic: str, apply: Callable[[], None]) -> PresenceDiff:
        previous = self._collapsed(topic)
        apply()
        current = self._collapsed(topic)

        diff = PresenceDiff(
            topic=topic,
            joins={uid: meta for uid, meta in current.items() if uid not in previous},
            leaves={uid: meta for uid, meta in previous.items() if uid not in current},
            updates={
                uid: meta for uid, meta in current.items() if uid in previous and previous[uid] != meta
            },
        )
        self._broadcast_diff(diff)
        if self._on_diff is not None and not diff.is_empty:
            try:
                self._on_diff(diff)
            except Exception:
                _logger.debug("on_diff callback failed", exc_info=True)
        return diff

    def _broadcast_diff(self, diff: PresenceDiff) -> None:
        channel = presence_topic(diff.topic)
        for user_id, meta in diff.joins.items():
            _logger.debug("Presence join user=%s topic=%s meta=%s", user_id, diff.topic, redact_for_log(meta))
            self._broadcaster.publish(
                channel,
                PresenceDiffEvent(event=PresenceEventName.JOIN, user_id=user_id, meta=copy.deepcopy(meta)),
            )
        for user_id in diff.leaves:
            _logger.debug("Presence leave user=%s topic=%s", user_id, diff.topic)
            self._broadcaster.publish(
                channel,
                PresenceDiffEvent(event=PresenceEventName.LEAVE, user_id=user_id),
            )

    # ------------------------------------------------------------------
    # Queries (never raise on a miss)
    # ------------------------------------------------------------------

    def _collapsed(self, topic: str) -> dict[str, dict[str, Any]]:
        users = self._topics.get(topic)
        if not users:
            return {}
        collapsed: dict[str, dict[str, Any]] = {}
        for user_id, conns in users.items():
            if not conns:
                continue
            latest = max(conns.values(), key=lambda conn: conn.written)
            collapsed[user_id] = copy.deepcopy(latest.meta)
        return collapsed

    def list(self, topic: str) -> list[PresenceUser]:  # noqa: A003
        """All present users in *topic*, one entry per user."""
        return [PresenceUser.from_meta(uid, meta) for uid, meta in self._collapsed(topic).items()]

    def get_by_key(self, topic: str, user_id: str) -> list[dict[str, Any]]:
        """Every connection's metadata for a user, most recent first."""
        conns = self._topics.get(topic, {}).get(user_id, {})
        ordered = sorted(conns.values(), key=lambda conn: conn.written, reverse=True)
        return [copy.deepcopy(conn.meta) for conn in ordered]

    def is_online(self, topic: str, user_id: str) -> bool:
        return bool(self._topics.get(topic, {}).get(user_id))

    def count(self, topic: str) -> int:
        return len(self._topics.get(topic, {}))

    def typing_users(self, topic: str) -> list[PresenceUser]:
        return [user for user in self.list(topic) if user.typing]

    def topics(self) -> frozenset[str]:
        return frozenset(self._topics)

    def subscribe(self, topic: str, subscriber: Subscriber) -> None:
        """Subscribe to join/leave events of *topic*."""
        self._broadcaster.subscribe(presence_topic(topic), subscriber)

    def unsubscribe(self, topic: str, subscriber: Subscriber) -> None:
        self._broadcaster.unsubscribe(presence_topic(topic), subscriber)
