"""Debounced fire-and-forget actions.

Usage::

    save_title = debounce_optimistic(lambda title: api.update_title(doc_id, title), 0.5)

    save_title("H")
    save_title("He")
    save_title("Hello")  # only this one reaches the API

A :class:`Debouncer` is a scoped resource: leaving its ``with`` /
``async with`` block cancels a pending call, and :meth:`Debouncer.cancel`
does the same explicitly.  Failures of the deferred action are logged and
never propagated; the debouncer takes no part in optimistic rollback.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)


class Debouncer:
    """Collapses bursts of calls into one call with the latest arguments.

    Calls must happen on a running event loop; the deferred action runs as
    a task on that loop.
    """

    def __init__(self, action: Callable[..., Any], delay: float = 0.3) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self._action = action
        self._delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._latest: tuple[tuple[Any, ...], dict[str, Any]] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        """Whether a call is scheduled and has not fired yet."""
        return self._handle is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        if self._closed:
            raise RuntimeError("Debouncer is closed")
        loop = asyncio.get_running_loop()
        self._latest = (args, kwargs)
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        latest, self._latest = self._latest, None
        if latest is None:
            return
        args, kwargs = latest
        task = asyncio.get_running_loop().create_task(self._run(args, kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        try:
            result = self._action(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception:
            _logger.exception("Debounced action failed")

    def cancel(self) -> bool:
        """Drop the scheduled call, if any.  Returns whether one was dropped."""
        handle = self._handle
        self._handle = None
        self._latest = None
        if handle is None:
            return False
        handle.cancel()
        return True

    async def flush(self) -> None:
        """Run the scheduled call now instead of waiting out the delay."""
        handle = self._handle
        latest = self._latest
        if handle is None or latest is None:
            return
        handle.cancel()
        self._handle = None
        self._latest = None
        await self._run(*latest)

    async def wait(self) -> None:
        """Wait for deferred actions that have already started."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    def close(self) -> None:
        self.cancel()
        self._closed = True

    def __enter__(self) -> Debouncer:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    async def __aenter__(self) -> Debouncer:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()


def debounce_optimistic(action: Callable[..., Any], delay: float = 0.3) -> Debouncer:
    """Return a :class:`Debouncer` that calls *action* *delay* seconds after the last call."""
    return Debouncer(action, delay)
