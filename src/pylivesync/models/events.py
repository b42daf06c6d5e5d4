"""Client integration events.

The transport layer hands the client a stream of ``{"event": <name>,
...fields}`` envelopes.  These names plus the store mutation actions are
the complete wire contract with the surrounding transport and UI layers:

* ``store:sync`` - a store mutation, carried flat (``store``, ``action``,
  ``payload``, optional ``seq``).
* ``store:reconcile`` - ``{store, tempId, item}``: replace the temp-tagged
  element with the confirmed ``item``.
* ``store:rollback`` - ``{store, tempId, reason?}``: remove the temp-tagged
  element.
* ``presence:sync`` - ``{topic, users}`` full presence snapshot.
* ``presence:join`` / ``presence:leave`` / ``presence:update`` -
  incremental presence changes for one user.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from pylivesync.models._base import ItemId, SyncBaseModel, validate_wire
from pylivesync.models.mutation import StoreMutation, parse_mutation
from pylivesync.models.presence import PresenceUser


class ClientEventName(StrEnum):
    STORE_SYNC = "store:sync"
    STORE_RECONCILE = "store:reconcile"
    STORE_ROLLBACK = "store:rollback"
    PRESENCE_SYNC = "presence:sync"
    PRESENCE_JOIN = "presence:join"
    PRESENCE_LEAVE = "presence:leave"
    PRESENCE_UPDATE = "presence:update"


class StoreSyncEvent(SyncBaseModel):
    """Envelope for a store mutation.

    The action vocabulary is checked when :attr:`mutation` is read, so an
    unknown action surfaces as :class:`~pylivesync.exceptions.ProtocolError`
    at the point the message is applied.
    """

    event: Literal["store:sync"] = "store:sync"
    store: str
    action: str
    payload: dict[str, Any] = Field(default_factory=dict)
    seq: int | None = None

    @classmethod
    def from_mutation(cls, mutation: StoreMutation) -> StoreSyncEvent:
        return cls(**mutation.model_dump())

    @property
    def mutation(self) -> StoreMutation:
        return parse_mutation(
            {"store": self.store, "action": self.action, "payload": self.payload, "seq": self.seq}
        )

    def to_wire(self) -> dict[str, Any]:
        exclude = {"seq"} if self.seq is None else None
        return self.model_dump(by_alias=True, exclude=exclude)


class StoreReconcileEvent(SyncBaseModel):
    event: Literal["store:reconcile"] = "store:reconcile"
    store: str
    temp_id: ItemId
    item: Any


class StoreRollbackEvent(SyncBaseModel):
    event: Literal["store:rollback"] = "store:rollback"
    store: str
    temp_id: ItemId
    reason: str | None = None


class PresenceSyncEvent(SyncBaseModel):
    event: Literal["presence:sync"] = "presence:sync"
    topic: str
    users: list[PresenceUser] = Field(default_factory=list)


class PresenceJoinEvent(SyncBaseModel):
    event: Literal["presence:join"] = "presence:join"
    topic: str
    user: PresenceUser


class PresenceLeaveEvent(SyncBaseModel):
    event: Literal["presence:leave"] = "presence:leave"
    topic: str
    user_id: str


class PresenceUpdateEvent(SyncBaseModel):
    event: Literal["presence:update"] = "presence:update"
    topic: str
    user_id: str
    meta: dict[str, Any] = Field(default_factory=dict)


ClientEvent = Annotated[
    StoreSyncEvent
    | StoreReconcileEvent
    | StoreRollbackEvent
    | PresenceSyncEvent
    | PresenceJoinEvent
    | PresenceLeaveEvent
    | PresenceUpdateEvent,
    Field(discriminator="event"),
]

_EVENT_TYPES = (
    StoreSyncEvent,
    StoreReconcileEvent,
    StoreRollbackEvent,
    PresenceSyncEvent,
    PresenceJoinEvent,
    PresenceLeaveEvent,
    PresenceUpdateEvent,
)
_EVENT_ADAPTER: TypeAdapter[ClientEvent] = TypeAdapter(ClientEvent)


def parse_client_event(raw: Any) -> ClientEvent:
    """Parse a ``{"event": ..., ...}`` envelope into a typed event.

    Raises
    ------
    ProtocolError
        Unknown event name or missing fields.
    """
    if isinstance(raw, _EVENT_TYPES):
        return raw
    return validate_wire(_EVENT_ADAPTER, raw, kind="client event")
