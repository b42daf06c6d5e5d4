"""List store kept in sync with server broadcasts.

A :class:`RealtimeStore` is the client mirror of one server collection.
Server ``store:sync`` mutations are applied through :meth:`handle_sync`;
the creator's own optimistic items are tagged with a temp id and later
confirmed (:meth:`reconcile`) or dropped (:meth:`rollback`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pylivesync.client.container import Container
from pylivesync.client.protocol import (
    OPTIMISTIC_KEY,
    GetId,
    MergeFn,
    apply_mutation,
    default_get_id,
    is_temp_tagged,
    item_id,
    merge_item,
    remove_temp,
    replace_temp,
    tag_optimistic,
    upsert,
)
from pylivesync.models._base import ItemId
from pylivesync.models.mutation import StoreMutation

_logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Merge strategies (existing, incoming) -> kept
# ------------------------------------------------------------------


def server_wins(existing: Any, incoming: Any) -> Any:
    return incoming


def client_wins(existing: Any, incoming: Any) -> Any:
    return existing


def _write_time(item: Any) -> Any:
    if isinstance(item, dict):
        return item.get("updated_at") or item.get("created_at") or 0
    return getattr(item, "updated_at", None) or getattr(item, "created_at", None) or 0


def last_write_wins(existing: Any, incoming: Any) -> Any:
    """Keep the more recent of the two by ``updated_at``/``created_at``; ties go to incoming."""
    return incoming if _write_time(incoming) >= _write_time(existing) else existing


def shallow_merge(existing: Any, incoming: Any) -> Any:
    if isinstance(existing, dict) and isinstance(incoming, dict):
        return {**existing, **incoming}
    return incoming


MERGE_STRATEGIES: dict[str, MergeFn] = {
    "server_wins": server_wins,
    "client_wins": client_wins,
    "last_write_wins": last_write_wins,
    "shallow_merge": shallow_merge,
}


class RealtimeStore(Container[list[Any]]):
    """Ordered collection mirroring a server-side list.

    Parameters
    ----------
    initial : list
        Starting items.
    get_id : callable
        Extracts an element id.  Defaults to ``item["id"]``.
    sort : callable, optional
        Sort key re-applied after every write.
    merge : callable
        ``(existing, incoming) -> kept`` used when a confirmed item from
        another client collides with an element already present.
        Defaults to :func:`server_wins`.
    """

    def __init__(
        self,
        initial: list[Any] | None = None,
        *,
        get_id: GetId = default_get_id,
        sort: Callable[[Any], Any] | None = None,
        merge: MergeFn = server_wins,
    ) -> None:
        self._get_id = get_id
        self._sort = sort
        self._merge = merge
        self._pending_temp: set[ItemId] = set()
        super().__init__(list(initial or []))

    def _normalize(self, value: list[Any]) -> list[Any]:
        if self._sort is None or not isinstance(value, list):
            return value
        return sorted(value, key=self._sort)

    @property
    def get_id(self) -> GetId:
        return self._get_id

    @property
    def merge(self) -> MergeFn:
        return self._merge

    @property
    def pending_temp_ids(self) -> frozenset[ItemId]:
        return frozenset(self._pending_temp)

    # ------------------------------------------------------------------
    # Direct list operations
    # ------------------------------------------------------------------

    def append(self, item: Any) -> None:
        self.set([*self.value, item])

    def prepend(self, item: Any) -> None:
        self.set([item, *self.value])

    def update_item(self, id: ItemId, changes: dict[str, Any]) -> None:  # noqa: A002
        self.set([merge_item(item, changes) if item_id(item, self._get_id) == id else item for item in self.value])

    def remove(self, id: ItemId) -> None:  # noqa: A002
        self.set([item for item in self.value if item_id(item, self._get_id) != id])

    def find(self, id: ItemId) -> Any | None:  # noqa: A002
        for item in self.value:
            if item_id(item, self._get_id) == id:
                return item
        return None

    # ------------------------------------------------------------------
    # Optimistic tagging
    # ------------------------------------------------------------------

    def add_optimistic(self, temp_id: ItemId, item: dict[str, Any]) -> None:
        """Append *item* tagged as unconfirmed under *temp_id*."""
        self._pending_temp.add(temp_id)
        self.append(tag_optimistic(item, temp_id))

    def reconcile(self, temp_id: ItemId, item: Any) -> bool:
        """Replace the element tagged *temp_id* with the confirmed *item*."""
        self._pending_temp.discard(temp_id)
        confirmed = {**item, OPTIMISTIC_KEY: False} if isinstance(item, dict) else item
        result, replaced = replace_temp(self.value, temp_id, confirmed, self._get_id)
        if replaced:
            self.set(result)
        return replaced

    def rollback(self, temp_id: ItemId) -> None:
        self._pending_temp.discard(temp_id)
        self.set(remove_temp(self.value, temp_id, self._get_id))

    def has_temp(self, temp_id: ItemId) -> bool:
        return any(is_temp_tagged(item, temp_id, self._get_id) for item in self.value)

    # ------------------------------------------------------------------
    # Server events
    # ------------------------------------------------------------------

    def handle_sync(self, mutation: StoreMutation) -> None:
        self.set(apply_mutation(self.value, mutation, self._get_id))

    def handle_reconcile(self, temp_id: ItemId, item: Any) -> None:
        """Confirm our own optimistic item, or take in another client's item.

        When nothing is tagged *temp_id* the item originated elsewhere: it
        is merged into an element with the same id, or appended.
        """
        if self.has_temp(temp_id):
            self.reconcile(temp_id, item)
            return
        _logger.debug("No optimistic element for temp_id=%s; merging confirmed item", temp_id)
        self.set(upsert(self.value, item, self._get_id, self._merge))
