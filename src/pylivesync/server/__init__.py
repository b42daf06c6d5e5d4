"""Authoritative side: topic fan-out, presence tracking and sync publishing."""

from pylivesync.server.broadcaster import Subscriber, TopicBroadcaster
from pylivesync.server.presence import PresenceTracker
from pylivesync.server.sync import StoreSyncPublisher, track_user

__all__ = [
    "PresenceTracker",
    "StoreSyncPublisher",
    "Subscriber",
    "TopicBroadcaster",
    "track_user",
]
