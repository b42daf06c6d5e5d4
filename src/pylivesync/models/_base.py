"""Base model for pylivesync wire messages.

Every wire model inherits from :class:`SyncBaseModel` which provides:

* ``alias_generator=to_camel`` so the camelCase wire keys (``tempId``,
  ``userId``, ``onlineAt``) map to snake_case fields, while
  ``populate_by_name`` still accepts the snake_case spelling.
* Frozen instances: a message is a value, never edited after parsing.
* :meth:`SyncBaseModel.to_wire` for the camelCase dict sent to clients.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from pylivesync.exceptions import ProtocolError

ItemId = str | int
"""Identifier of an element in an ordered collection."""

T = TypeVar("T")


class SyncBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with wire (camelCase) keys."""
        return self.model_dump(by_alias=True)


def validate_wire(adapter: TypeAdapter[T], raw: Any, *, kind: str) -> T:
    """Validate *raw* against *adapter*, mapping failures to :class:`ProtocolError`."""
    try:
        return adapter.validate_python(raw)
    except ValidationError as exc:
        store = raw.get("store") if isinstance(raw, dict) else None
        action = raw.get("action") if isinstance(raw, dict) else None
        raise ProtocolError(
            f"Invalid {kind}: {exc.error_count()} validation error(s): {exc.errors()[0]['msg']}",
            store=store if isinstance(store, str) else None,
            action=action if isinstance(action, str) else None,
        ) from exc
