"""Named client containers and the routing of server mutations into them.

The registry owns the mapping ``store name -> container``.  Server
``store:sync`` mutations are applied synchronously, in one step, to the
named container; mutations for names nobody registered are logged and
dropped, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pylivesync._redact import redact_for_log
from pylivesync.client.container import Container
from pylivesync.client.protocol import (
    GetId,
    apply_mutation,
    default_get_id,
    remove_temp,
    replace_temp,
    upsert,
)
from pylivesync.client.realtime import RealtimeStore
from pylivesync.exceptions import ProtocolError, StoreNotRegisteredError
from pylivesync.models._base import ItemId
from pylivesync.models.mutation import StoreMutation, parse_mutation

_logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    container: Container[Any]
    get_id: GetId
    last_seq: int | None = None


class ClientStoreRegistry:
    """Name-to-container table for one client session.

    Args:
        drop_stale_sequences: Drop mutations whose ``seq`` is not greater
            than the last one applied to the same store.  Mutations
            without ``seq`` are always applied.
            The last sequence is kept per store; a publisher numbers
            each topic from 1, so a store must be fed by a single topic.
            Call :meth:`reset_sequence` after the publisher restarts.
        log_max_string: Truncation length for payloads in log messages.

    """

    def __init__(self, *, drop_stale_sequences: bool = True, log_max_string: int = 256) -> None:
        self._drop_stale_sequences = drop_stale_sequences
        self._log_max_string = log_max_string
        self._entries: dict[str, _Entry] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_store(
        self,
        name: str,
        container: Container[Any],
        *,
        get_id: GetId | None = None,
    ) -> Container[Any]:
        """Register *container* under *name*, replacing any previous entry.

        ``get_id`` defaults to the container's own ``get_id`` (list stores
        carry one), else to ``item["id"]``.
        """
        if get_id is None:
            get_id = getattr(container, "get_id", None) or default_get_id
        if name in self._entries:
            _logger.debug("Replacing registered store name=%s", name)
        self._entries[name] = _Entry(container=container, get_id=get_id)
        return container

    def unregister_store(self, name: str) -> bool:
        return self._entries.pop(name, None) is not None

    def get_store(self, name: str) -> Container[Any] | None:
        entry = self._entries.get(name)
        return entry.container if entry is not None else None

    def require(self, name: str) -> Container[Any]:
        entry = self._entries.get(name)
        if entry is None:
            raise StoreNotRegisteredError(name)
        return entry.container

    def names(self) -> list[str]:
        return list(self._entries)

    def reset_sequence(self, name: str | None = None) -> None:
        """Forget the last applied ``seq`` of *name*, or of every store."""
        if name is None:
            entries = list(self._entries.values())
        else:
            entry = self._entries.get(name)
            if entry is None:
                raise StoreNotRegisteredError(name)
            entries = [entry]
        for entry in entries:
            entry.last_seq = None
        _logger.debug("Reset sequence tracking store=%s", name or "*")

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Server mutations
    # ------------------------------------------------------------------

    def apply(self, mutation: StoreMutation | dict[str, Any]) -> bool:
        """Apply a server mutation to its store.

        Returns True when the container was written.  Unknown stores,
        invalid messages, list actions on non-list values and stale
        sequence numbers are logged and dropped (False).
        """
        try:
            parsed = parse_mutation(mutation)
        except ProtocolError as exc:
            _logger.warning(
                "Dropping invalid store mutation: %s payload=%s",
                exc,
                redact_for_log(mutation, max_string=self._log_max_string),
            )
            return False

        entry = self._entries.get(parsed.store)
        if entry is None:
            _logger.warning("Dropping mutation for unregistered store=%s action=%s", parsed.store, parsed.action)
            return False

        if parsed.seq is not None and self._drop_stale_sequences:
            if entry.last_seq is not None and parsed.seq <= entry.last_seq:
                _logger.debug(
                    "Dropping stale mutation store=%s seq=%d last_seq=%d",
                    parsed.store,
                    parsed.seq,
                    entry.last_seq,
                )
                return False

        try:
            new_value = apply_mutation(entry.container.value, parsed, entry.get_id)
        except ProtocolError as exc:
            _logger.warning("Dropping mutation store=%s action=%s: %s", parsed.store, parsed.action, exc)
            return False

        entry.container.set(new_value)
        if parsed.seq is not None:
            entry.last_seq = parsed.seq
        _logger.debug("Applied mutation store=%s action=%s seq=%s", parsed.store, parsed.action, parsed.seq)
        return True

    def reconcile(self, store: str, temp_id: ItemId, item: Any) -> bool:
        """Replace the element tagged *temp_id* with the confirmed *item*.

        When no element carries the tag the item was created by another
        client: it is merged into the element with the same id, or
        appended.
        """
        entry = self._entries.get(store)
        if entry is None:
            _logger.warning("Dropping reconcile for unregistered store=%s temp_id=%s", store, temp_id)
            return False

        container = entry.container
        if isinstance(container, RealtimeStore):
            container.handle_reconcile(temp_id, item)
            return True

        items = container.value
        if not isinstance(items, list):
            _logger.warning("Dropping reconcile for non-list store=%s temp_id=%s", store, temp_id)
            return False
        result, replaced = replace_temp(items, temp_id, item, entry.get_id)
        if not replaced:
            result = upsert(items, item, entry.get_id)
        container.set(result)
        return True

    def rollback(self, store: str, temp_id: ItemId, reason: str | None = None) -> bool:
        """Remove every element tagged *temp_id*."""
        entry = self._entries.get(store)
        if entry is None:
            _logger.warning("Dropping rollback for unregistered store=%s temp_id=%s", store, temp_id)
            return False

        if reason:
            _logger.warning("Optimistic update rolled back store=%s temp_id=%s reason=%s", store, temp_id, reason)

        container = entry.container
        if isinstance(container, RealtimeStore):
            container.rollback(temp_id)
            return True

        items = container.value
        if not isinstance(items, list):
            _logger.warning("Dropping rollback for non-list store=%s temp_id=%s", store, temp_id)
            return False
        container.set(remove_temp(items, temp_id, entry.get_id))
        return True
