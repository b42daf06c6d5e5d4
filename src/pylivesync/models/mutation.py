"""Store sync protocol messages.

A :data:`StoreMutation` is a closed sum type over five actions, each
carrying only the payload fields it needs:

=========  ===================  ==========================================
action     payload              effect on the target container
=========  ===================  ==========================================
``set``    ``{data}``           replace the entire value
``append`` ``{item}``           append to the end of the list
``prepend````{item}``           insert at the start of the list
``update`` ``{id, changes}``    shallow-merge ``changes`` into element ``id``
``remove`` ``{id}``             delete element ``id``
=========  ===================  ==========================================

These actions are not idempotent: delivering ``append`` twice appends
twice.  The optional ``seq`` is an opt-in per-topic sequence number the
registry can use to drop repeated deliveries.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter, field_validator

from pylivesync.exceptions import ProtocolError
from pylivesync.models._base import ItemId, SyncBaseModel, validate_wire


class StoreAction(StrEnum):
    SET = "set"
    APPEND = "append"
    PREPEND = "prepend"
    UPDATE = "update"
    REMOVE = "remove"


# ------------------------------------------------------------------
# Payloads
# ------------------------------------------------------------------


class SetPayload(SyncBaseModel):
    data: Any


class ItemPayload(SyncBaseModel):
    item: Any


class UpdatePayload(SyncBaseModel):
    id: ItemId
    changes: dict[str, Any] = Field(default_factory=dict)


class RemovePayload(SyncBaseModel):
    id: ItemId


# ------------------------------------------------------------------
# Mutations
# ------------------------------------------------------------------


class _MutationBase(SyncBaseModel):
    store: str
    seq: int | None = Field(default=None, ge=0)

    @field_validator("store")
    @classmethod
    def _normalize_store(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("store must be non-empty")
        return name

    def to_wire(self) -> dict[str, Any]:
        """Serialize as ``{store, action, payload}`` (plus ``seq`` when stamped)."""
        exclude = {"seq"} if self.seq is None else None
        return self.model_dump(by_alias=True, exclude=exclude)

    def with_seq(self, seq: int) -> StoreMutation:
        return self.model_copy(update={"seq": seq})  # type: ignore[return-value]


class SetMutation(_MutationBase):
    action: Literal["set"] = "set"
    payload: SetPayload


class AppendMutation(_MutationBase):
    action: Literal["append"] = "append"
    payload: ItemPayload


class PrependMutation(_MutationBase):
    action: Literal["prepend"] = "prepend"
    payload: ItemPayload


class UpdateMutation(_MutationBase):
    action: Literal["update"] = "update"
    payload: UpdatePayload


class RemoveMutation(_MutationBase):
    action: Literal["remove"] = "remove"
    payload: RemovePayload


StoreMutation = Annotated[
    SetMutation | AppendMutation | PrependMutation | UpdateMutation | RemoveMutation,
    Field(discriminator="action"),
]

_MUTATION_TYPES = (SetMutation, AppendMutation, PrependMutation, UpdateMutation, RemoveMutation)
_MUTATION_ADAPTER: TypeAdapter[StoreMutation] = TypeAdapter(StoreMutation)

_MISSING: Any = object()


def parse_mutation(raw: Any) -> StoreMutation:
    """Parse a wire dict into a typed mutation.

    Already-parsed mutations are returned unchanged.

    Raises
    ------
    ProtocolError
        Unknown action, missing store, or a payload without its
        required fields.
    """
    if isinstance(raw, _MUTATION_TYPES):
        return raw
    return validate_wire(_MUTATION_ADAPTER, raw, kind="store mutation")


def build_mutation(
    store: str,
    action: StoreAction | str,
    *,
    data: Any = _MISSING,
    id: ItemId | None = None,  # noqa: A002
    changes: dict[str, Any] | None = None,
    seq: int | None = None,
) -> StoreMutation:
    """Build a mutation from the server-side broadcast shape.

    Authoritative code describes a change as ``data`` (for ``set``,
    ``append`` and ``prepend``) or ``id``/``changes`` (for ``update`` and
    ``remove``).  For ``append``/``prepend`` the ``data`` becomes the
    payload ``item``.
    """
    try:
        act = StoreAction(action)
    except ValueError as exc:
        raise ProtocolError(f"Unknown store action: {action!r}", store=store, action=str(action)) from exc

    payload: dict[str, Any]
    if act in (StoreAction.SET, StoreAction.APPEND, StoreAction.PREPEND):
        if data is _MISSING:
            raise ProtocolError(f"{act.value!r} requires data", store=store, action=act.value)
        payload = {"data": data} if act == StoreAction.SET else {"item": data}
    else:
        if id is None:
            raise ProtocolError(f"{act.value!r} requires id", store=store, action=act.value)
        payload = {"id": id}
        if act == StoreAction.UPDATE:
            payload["changes"] = dict(changes or {})

    return parse_mutation({"store": store, "action": act.value, "payload": payload, "seq": seq})
