"""Presence wire models.

Two shapes leave the presence tracker:

* :class:`PresenceUser` - one collapsed entry of a presence snapshot,
  ``{id, name, onlineAt, typing, status, avatar, ...meta}``.
* :class:`PresenceDiffEvent` - the per-user join/leave event broadcast on
  ``presence:{topic}``, ``{event, userId, meta?}``.

:class:`PresenceDiff` is the in-process record of one registry change and
is never serialized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, field_validator

from pylivesync.models._base import SyncBaseModel

_logger = logging.getLogger(__name__)

# Meta keys that map onto named PresenceUser fields.
_KNOWN_META_KEYS = frozenset({"user_name", "name", "online_at", "typing", "status", "avatar"})


class PresenceEventName(StrEnum):
    JOIN = "presence_join"
    LEAVE = "presence_leave"


def presence_topic(topic: str) -> str:
    """Broadcast topic carrying join/leave events for *topic*."""
    return f"presence:{topic}"


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    _logger.debug("Ignoring non-text presence value=%r", value)
    return None


class PresenceUser(SyncBaseModel):
    """A present user as shown to clients.

    Extra metadata keys are kept as-is (``extra="allow"``) so custom
    flags survive the round trip to the client.
    Known fields are coerced from whatever metadata the app tracked:
    numbers become strings, unusable values fall back to the field
    default, so one user's metadata can never break a listing.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None
    online_at: float | None = None
    typing: bool = False
    status: str = "online"
    avatar: str | None = None

    @field_validator("name", "avatar", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> str:
        return _as_text(value) or "online"

    @field_validator("online_at", mode="before")
    @classmethod
    def _coerce_online_at(cls, value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            _logger.debug("Ignoring non-numeric online_at=%r", value)
            return None

    @field_validator("typing", mode="before")
    @classmethod
    def _coerce_typing(cls, value: Any) -> bool:
        return bool(value)

    @classmethod
    def from_meta(cls, user_id: str, meta: dict[str, Any]) -> PresenceUser:
        """Build a snapshot entry from tracker metadata."""
        extras = {key: value for key, value in meta.items() if key not in _KNOWN_META_KEYS and key != "id"}
        return cls(
            id=user_id,
            name=meta.get("user_name", meta.get("name")),
            online_at=meta.get("online_at"),
            typing=bool(meta.get("typing") or False),
            status=meta.get("status") or "online",
            avatar=meta.get("avatar"),
            **extras,
        )


class PresenceDiffEvent(SyncBaseModel):
    event: PresenceEventName
    user_id: str
    meta: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        exclude = {"meta"} if self.meta is None else None
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


@dataclass(frozen=True)
class PresenceDiff:
    """Change between two generations of one topic's registry.

    ``joins``/``leaves`` are user-level membership changes.  ``updates``
    holds users that stayed present but whose collapsed metadata changed.
    """

    topic: str
    joins: dict[str, dict[str, Any]] = field(default_factory=dict)
    leaves: dict[str, dict[str, Any]] = field(default_factory=dict)
    updates: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.joins or self.leaves or self.updates)

