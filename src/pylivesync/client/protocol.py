"""Pure application of store sync mutations to container values.

Every function here returns a new value and never edits its input, so a
snapshot captured before a mutation stays intact.

Optimistic list elements may carry a temp tag (``_temp_id``) and an
``_optimistic`` flag.  Temp-tag matching also accepts an element whose own
id equals the temp id, which is how caller-chosen temporary ids work.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from pylivesync.exceptions import ProtocolError
from pylivesync.models._base import ItemId
from pylivesync.models.mutation import (
    AppendMutation,
    PrependMutation,
    RemoveMutation,
    SetMutation,
    StoreMutation,
    UpdateMutation,
)

TEMP_ID_KEY = "_temp_id"
OPTIMISTIC_KEY = "_optimistic"

GetId = Callable[[Any], ItemId]
MergeFn = Callable[[Any, Any], Any]


def default_get_id(item: Any) -> ItemId:
    """Read ``item["id"]`` for mappings, ``item.id`` otherwise."""
    if isinstance(item, Mapping):
        return item["id"]
    return item.id


def item_id(item: Any, get_id: GetId) -> ItemId | None:
    """Id of *item*, or ``None`` when it has none."""
    try:
        return get_id(item)
    except (KeyError, AttributeError, TypeError):
        return None


def merge_item(item: Any, changes: Mapping[str, Any]) -> Any:
    """Shallow-merge *changes* into *item* (dict or pydantic model)."""
    if isinstance(item, Mapping):
        return {**item, **changes}
    if isinstance(item, BaseModel):
        return item.model_copy(update=dict(changes))
    raise ProtocolError(f"Cannot merge changes into {type(item).__name__}")


def _require_list(value: Any, mutation: StoreMutation) -> list[Any]:
    if not isinstance(value, list):
        raise ProtocolError(
            f"{mutation.action!r} requires a list value, store holds {type(value).__name__}",
            store=mutation.store,
            action=mutation.action,
        )
    return value


def apply_mutation(value: Any, mutation: StoreMutation, get_id: GetId = default_get_id) -> Any:
    """Return *value* with *mutation* applied.

    ``update`` and ``remove`` on an absent id return an equal copy.

    Raises
    ------
    ProtocolError
        A list action was applied to a non-list value.
    """
    if isinstance(mutation, SetMutation):
        return mutation.payload.data

    items = _require_list(value, mutation)

    if isinstance(mutation, AppendMutation):
        return [*items, mutation.payload.item]

    if isinstance(mutation, PrependMutation):
        return [mutation.payload.item, *items]

    if isinstance(mutation, UpdateMutation):
        target = mutation.payload.id
        changes = mutation.payload.changes
        return [merge_item(item, changes) if item_id(item, get_id) == target else item for item in items]

    if isinstance(mutation, RemoveMutation):
        target = mutation.payload.id
        return [item for item in items if item_id(item, get_id) != target]

    raise ProtocolError(f"Unsupported mutation: {type(mutation).__name__}")


# ------------------------------------------------------------------
# Temp-id reconciliation
# ------------------------------------------------------------------


def is_temp_tagged(item: Any, temp_id: ItemId, get_id: GetId = default_get_id) -> bool:
    if isinstance(item, Mapping) and item.get(TEMP_ID_KEY) == temp_id:
        return True
    return item_id(item, get_id) == temp_id


def tag_optimistic(item: Any, temp_id: ItemId) -> Any:
    """Mark a mapping item as an unconfirmed optimistic element."""
    if not isinstance(item, Mapping):
        raise ProtocolError(f"Only mapping items can be temp-tagged, got {type(item).__name__}")
    return {**item, OPTIMISTIC_KEY: True, TEMP_ID_KEY: temp_id}


def replace_temp(
    items: list[Any],
    temp_id: ItemId,
    item: Any,
    get_id: GetId = default_get_id,
) -> tuple[list[Any], bool]:
    """Replace every element tagged *temp_id* with *item*, in place of it.

    Returns the new list and whether anything was replaced.
    """
    replaced = False
    result: list[Any] = []
    for current in items:
        if is_temp_tagged(current, temp_id, get_id):
            result.append(item)
            replaced = True
        else:
            result.append(current)
    return result, replaced


def remove_temp(items: list[Any], temp_id: ItemId, get_id: GetId = default_get_id) -> list[Any]:
    return [item for item in items if not is_temp_tagged(item, temp_id, get_id)]


def upsert(
    items: list[Any],
    item: Any,
    get_id: GetId = default_get_id,
    merge: MergeFn | None = None,
) -> list[Any]:
    """Merge *item* into the element with the same id, or append it."""
    target = item_id(item, get_id)
    if target is not None:
        for index, current in enumerate(items):
            if item_id(current, get_id) == target:
                result = list(items)
                result[index] = merge(current, item) if merge is not None else item
                return result
    return [*items, item]
