"""pylivesync - Real-time store synchronization with optimistic updates and presence."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pylivesync")
except PackageNotFoundError:
    __version__ = "0+local"
from pylivesync.client import (
    MERGE_STRATEGIES,
    ClientStoreRegistry,
    Container,
    Debouncer,
    OptimisticList,
    OptimisticStore,
    PresenceStore,
    RealtimeStore,
    TypingIndicator,
    client_wins,
    debounce_optimistic,
    last_write_wins,
    optimistic_mutation,
    server_wins,
    shallow_merge,
)
from pylivesync.config import SyncConfig
from pylivesync.context import SyncContext
from pylivesync.exceptions import (
    LiveSyncError,
    ProtocolError,
    StoreNotRegisteredError,
    SyncConfigError,
)
from pylivesync.models import (
    ClientEventName,
    PresenceDiff,
    PresenceDiffEvent,
    PresenceUser,
    StoreAction,
    StoreMutation,
    StoreReconcileEvent,
    StoreRollbackEvent,
    StoreSyncEvent,
    build_mutation,
    parse_client_event,
    parse_mutation,
)
from pylivesync.server import (
    PresenceTracker,
    StoreSyncPublisher,
    Subscriber,
    TopicBroadcaster,
    track_user,
)

__all__ = [
    "__version__",
    "MERGE_STRATEGIES",
    "ClientEventName",
    "ClientStoreRegistry",
    "Container",
    "Debouncer",
    "LiveSyncError",
    "OptimisticList",
    "OptimisticStore",
    "PresenceDiff",
    "PresenceDiffEvent",
    "PresenceStore",
    "PresenceTracker",
    "PresenceUser",
    "ProtocolError",
    "RealtimeStore",
    "StoreAction",
    "StoreMutation",
    "StoreNotRegisteredError",
    "StoreReconcileEvent",
    "StoreRollbackEvent",
    "StoreSyncEvent",
    "StoreSyncPublisher",
    "Subscriber",
    "SyncConfig",
    "SyncConfigError",
    "SyncContext",
    "TopicBroadcaster",
    "TypingIndicator",
    "build_mutation",
    "client_wins",
    "debounce_optimistic",
    "last_write_wins",
    "optimistic_mutation",
    "parse_client_event",
    "parse_mutation",
    "server_wins",
    "shallow_merge",
    "track_user",
]
