"""Client-side containers, optimistic updates and server event handling."""

from pylivesync.client.container import Container, Unsubscribe
from pylivesync.client.debounce import Debouncer, debounce_optimistic
from pylivesync.client.optimistic import OptimisticList, OptimisticStore, optimistic_mutation
from pylivesync.client.presence import PresenceStore, TypingIndicator
from pylivesync.client.protocol import apply_mutation, default_get_id
from pylivesync.client.realtime import (
    MERGE_STRATEGIES,
    RealtimeStore,
    client_wins,
    last_write_wins,
    server_wins,
    shallow_merge,
)
from pylivesync.client.registry import ClientStoreRegistry

__all__ = [
    "MERGE_STRATEGIES",
    "ClientStoreRegistry",
    "Container",
    "Debouncer",
    "OptimisticList",
    "OptimisticStore",
    "PresenceStore",
    "RealtimeStore",
    "TypingIndicator",
    "Unsubscribe",
    "apply_mutation",
    "client_wins",
    "debounce_optimistic",
    "default_get_id",
    "last_write_wins",
    "optimistic_mutation",
    "server_wins",
    "shallow_merge",
]
