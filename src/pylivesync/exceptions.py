"""Custom exception hierarchy for pylivesync."""

from __future__ import annotations


class LiveSyncError(Exception):
    """Base exception for all pylivesync errors."""


class SyncConfigError(LiveSyncError):
    """Invalid or missing configuration."""


class ProtocolError(LiveSyncError):
    """A wire message does not fit the store sync / event vocabulary.

    Raised for unknown actions or event names, payloads missing their
    required fields, and list actions applied to a non-list container.
    """

    def __init__(
        self,
        message: str,
        *,
        store: str | None = None,
        action: str | None = None,
    ) -> None:
        self.store = store
        self.action = action
        super().__init__(message)


class StoreNotRegisteredError(LiveSyncError):
    """Strict lookup of a store name that has no registered container.

    Message routing never raises this; it logs and drops instead.  Only
    explicit lookups such as :meth:`ClientStoreRegistry.require` do.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Store not registered: {name!r}")
