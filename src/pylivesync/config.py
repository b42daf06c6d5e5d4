"""Runtime configuration for pylivesync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pylivesync.exceptions import SyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[float] | type[int]) -> float | int:
    try:
        return cast(value)
    except ValueError as exc:
        raise SyncConfigError(f"{env_key} must be a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Synchronization engine configuration.

    Parameters
    ----------
    debounce_delay : float
        Default delay in seconds used by :func:`debounce_optimistic`
        when a context creates debouncers.
    typing_debounce : float
        Seconds of input silence after which a typing indicator stops.
    subscriber_queue_size : int
        Maximum queued messages per broadcast subscriber.  ``0`` means
        unbounded.  When bounded, messages for a full subscriber are
        dropped (and logged) rather than blocking the publisher.
    operation_id_prefix : str
        Prefix for generated optimistic operation ids (``op_1``, ...).
    drop_stale_sequences : bool
        Drop store mutations whose ``seq`` is not greater than the last
        applied one for the same store.  Mutations without ``seq`` are
        always applied.
    log_max_string : int
        Truncation length for strings in debug-logged payloads.
    """

    debounce_delay: float = 0.3
    typing_debounce: float = 1.0
    subscriber_queue_size: int = 0
    operation_id_prefix: str = "op"
    drop_stale_sequences: bool = True
    log_max_string: int = 256

    def __post_init__(self) -> None:
        if self.debounce_delay < 0:
            raise SyncConfigError("debounce_delay must be >= 0")
        if self.typing_debounce < 0:
            raise SyncConfigError("typing_debounce must be >= 0")
        if self.subscriber_queue_size < 0:
            raise SyncConfigError("subscriber_queue_size must be >= 0")
        if not self.operation_id_prefix.strip():
            raise SyncConfigError("operation_id_prefix must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``LIVESYNC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[float] | type[int]]] = {
            "LIVESYNC_DEBOUNCE_DELAY": ("debounce_delay", float),
            "LIVESYNC_TYPING_DEBOUNCE": ("typing_debounce", float),
            "LIVESYNC_SUBSCRIBER_QUEUE_SIZE": ("subscriber_queue_size", int),
            "LIVESYNC_LOG_MAX_STRING": ("log_max_string", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        prefix = env.get("LIVESYNC_OPERATION_ID_PREFIX")
        if prefix is not None:
            config_kwargs["operation_id_prefix"] = prefix

        if "drop_stale_sequences" not in overrides:
            config_kwargs["drop_stale_sequences"] = _env_bool(
                env.get("LIVESYNC_DROP_STALE_SEQUENCES"),
                True,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
