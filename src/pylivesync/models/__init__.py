"""Wire models for store sync, client events and presence."""

from pylivesync.models._base import ItemId, SyncBaseModel
from pylivesync.models.events import (
    ClientEvent,
    ClientEventName,
    PresenceJoinEvent,
    PresenceLeaveEvent,
    PresenceSyncEvent,
    PresenceUpdateEvent,
    StoreReconcileEvent,
    StoreRollbackEvent,
    StoreSyncEvent,
    parse_client_event,
)
from pylivesync.models.mutation import (
    AppendMutation,
    ItemPayload,
    PrependMutation,
    RemoveMutation,
    RemovePayload,
    SetMutation,
    SetPayload,
    StoreAction,
    StoreMutation,
    UpdateMutation,
    UpdatePayload,
    build_mutation,
    parse_mutation,
)
from pylivesync.models.presence import (
    PresenceDiff,
    PresenceDiffEvent,
    PresenceEventName,
    PresenceUser,
    presence_topic,
)

__all__ = [
    "AppendMutation",
    "ClientEvent",
    "ClientEventName",
    "ItemId",
    "ItemPayload",
    "PrependMutation",
    "PresenceDiff",
    "PresenceDiffEvent",
    "PresenceEventName",
    "PresenceJoinEvent",
    "PresenceLeaveEvent",
    "PresenceSyncEvent",
    "PresenceUpdateEvent",
    "PresenceUser",
    "RemoveMutation",
    "RemovePayload",
    "SetMutation",
    "SetPayload",
    "StoreAction",
    "StoreMutation",
    "StoreReconcileEvent",
    "StoreRollbackEvent",
    "StoreSyncEvent",
    "SyncBaseModel",
    "UpdateMutation",
    "UpdatePayload",
    "build_mutation",
    "parse_client_event",
    "parse_mutation",
    "presence_topic",
]
