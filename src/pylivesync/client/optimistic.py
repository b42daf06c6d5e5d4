"""Optimistic updates with automatic rollback.

:meth:`OptimisticStore.optimistic` applies a local change immediately,
awaits the confirming action, and then either commits a success transform
or restores the snapshot taken just before the change::

    todos = OptimisticList([])

    # UI sees the temp item right away; it becomes the server item on success
    created = await todos.add({"id": "temp_1", "text": "Buy milk"}, lambda: api.create(...))

Snapshots are whole-container copies.  Two overlapping operations on the
same store each restore their own snapshot on failure, so a failing later
operation discards an earlier one's committed change.  Callers that need
independent rollback must serialize operations per store.
"""

from __future__ import annotations

import copy
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pylivesync.client.container import Container, Unsubscribe
from pylivesync.client.protocol import GetId, default_get_id, item_id, merge_item
from pylivesync.models._base import ItemId

T = TypeVar("T")
R = TypeVar("R")

_logger = logging.getLogger(__name__)

SuccessTransform = Callable[[Any, T], T]
ErrorTransform = Callable[[Exception, T], T]


class OptimisticStore(Container[T]):
    """Container with pending/error tracking for optimistic operations.

    Operation ids default to ``{prefix}_{n}`` and are unique for the life
    of the store.  ``pending`` and ``errors`` are observable through
    :meth:`subscribe_pending` and :meth:`subscribe_errors`.
    """

    def __init__(self, initial: T, *, id_prefix: str = "op") -> None:
        super().__init__(initial)
        self._id_prefix = id_prefix
        self._operation_ids = itertools.count(1)
        self._pending: Container[frozenset[str]] = Container(frozenset())
        self._errors: Container[dict[str, Exception]] = Container({})

    # ------------------------------------------------------------------
    # Pending / error state
    # ------------------------------------------------------------------

    @property
    def pending(self) -> frozenset[str]:
        return self._pending.value

    @property
    def errors(self) -> dict[str, Exception]:
        return dict(self._errors.value)

    def subscribe_pending(self, callback: Callable[[frozenset[str]], None]) -> Unsubscribe:
        return self._pending.subscribe(callback)

    def subscribe_errors(self, callback: Callable[[dict[str, Exception]], None]) -> Unsubscribe:
        return self._errors.subscribe(callback)

    def is_pending(self) -> bool:
        return bool(self._pending.value)

    def has_errors(self) -> bool:
        return bool(self._errors.value)

    def get_error(self, operation_id: str) -> Exception | None:
        return self._errors.value.get(operation_id)

    def clear_error(self, operation_id: str) -> None:
        if operation_id in self._errors.value:
            self._errors.set({k: v for k, v in self._errors.value.items() if k != operation_id})

    def clear_errors(self) -> None:
        self._errors.set({})

    def next_operation_id(self) -> str:
        return f"{self._id_prefix}_{next(self._operation_ids)}"

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    async def optimistic(
        self,
        optimistic_update: Callable[[T], T],
        async_action: Callable[[], Awaitable[R]],
        *,
        on_success: SuccessTransform[T] | None = None,
        on_error: ErrorTransform[T] | None = None,
        id: str | None = None,  # noqa: A002
    ) -> R:
        """Apply *optimistic_update* now, then confirm with *async_action*.

        Args:
            optimistic_update: ``current -> new`` applied synchronously.
            async_action: Confirming coroutine factory.
            on_success: ``(result, current) -> new`` applied after success.
                Without it the optimistic value is final.
            on_error: ``(error, current) -> new`` applied after failure.
                Without it the pre-operation snapshot is restored.
            id: Operation id; generated when omitted.

        Returns:
            The action's result.

        Raises:
            Exception: Whatever *async_action* (or *on_success*) raised,
                after the rollback and error bookkeeping.

        """
        operation_id = id or self.next_operation_id()
        if operation_id in self._pending.value:
            raise ValueError(f"Operation {operation_id!r} is already pending")

        previous = copy.deepcopy(self.value)
        self.set(optimistic_update(self.value))

        self._pending.set(self._pending.value | {operation_id})
        self.clear_error(operation_id)
        _logger.debug("Optimistic operation started id=%s", operation_id)

        try:
            result = await async_action()
            if on_success is not None:
                self.set(on_success(result, self.value))
            _logger.debug("Optimistic operation confirmed id=%s", operation_id)
            return result
        except Exception as error:
            if on_error is not None:
                self.set(on_error(error, self.value))
            else:
                self.set(previous)
            self._errors.set({**self._errors.value, operation_id: error})
            _logger.debug("Optimistic operation failed id=%s error=%r", operation_id, error)
            raise
        finally:
            self._pending.set(self._pending.value - {operation_id})


def optimistic_mutation(
    *,
    store: Container[T],
    optimistic: Callable[..., T],
    action: Callable[..., Awaitable[R]],
    on_success: SuccessTransform[T] | None = None,
    on_error: Callable[[Exception, T], None] | None = None,
) -> Callable[..., Awaitable[R]]:
    """Wrap an async action with optimistic update logic.

    The returned coroutine function takes the action's arguments, applies
    ``optimistic(current, *args)``, awaits ``action(*args)`` and on
    failure restores the snapshot, calls ``on_error(error, previous)``
    and re-raises::

        delete_item = optimistic_mutation(
            store=items,
            optimistic=lambda items, item_id: [i for i in items if i["id"] != item_id],
            action=api.delete_item,
        )
        await delete_item(42)
    """

    async def _run(*args: Any) -> R:
        previous = copy.deepcopy(store.value)
        store.set(optimistic(store.value, *args))
        try:
            result = await action(*args)
            if on_success is not None:
                store.set(on_success(result, store.value))
            return result
        except Exception as error:
            store.set(previous)
            if on_error is not None:
                on_error(error, previous)
            raise

    return _run


class OptimisticList(OptimisticStore[list[Any]]):
    """Optimistic store for ordered collections of id-bearing items.

    ``add`` expects the item to carry a temporary id; on success every
    element with that id is replaced by the server's item, keeping its
    position.
    """

    def __init__(
        self,
        initial: list[Any] | None = None,
        *,
        get_id: GetId | None = None,
        id_prefix: str = "op",
    ) -> None:
        super().__init__(list(initial or []), id_prefix=id_prefix)
        self._get_id = get_id or default_get_id

    @property
    def get_id(self) -> GetId:
        return self._get_id

    def _replace_by_id(self, items: list[Any], target: ItemId | None, replacement: Any) -> list[Any]:
        return [replacement if item_id(item, self._get_id) == target else item for item in items]

    async def add(
        self,
        item: Any,
        action: Callable[[], Awaitable[Any]],
        *,
        on_error: ErrorTransform[list[Any]] | None = None,
        operation_id: str | None = None,
    ) -> Any:
        temp_id = item_id(item, self._get_id)
        return await self.optimistic(
            lambda items: [*items, item],
            action,
            on_success=lambda result, items: self._replace_by_id(items, temp_id, result),
            on_error=on_error,
            id=operation_id,
        )

    async def update(  # type: ignore[override]
        self,
        id: ItemId,  # noqa: A002
        changes: dict[str, Any],
        action: Callable[[], Awaitable[Any]],
        *,
        on_error: ErrorTransform[list[Any]] | None = None,
        operation_id: str | None = None,
    ) -> Any:
        """Shallow-merge *changes* into element *id*; replace it with the server item on success."""
        return await self.optimistic(
            lambda items: [merge_item(item, changes) if item_id(item, self._get_id) == id else item for item in items],
            action,
            on_success=lambda result, items: self._replace_by_id(items, id, result),
            on_error=on_error,
            id=operation_id,
        )

    async def remove(
        self,
        id: ItemId,  # noqa: A002
        action: Callable[[], Awaitable[Any]],
        *,
        on_success: SuccessTransform[list[Any]] | None = None,
        on_error: ErrorTransform[list[Any]] | None = None,
        operation_id: str | None = None,
    ) -> Any:
        return await self.optimistic(
            lambda items: [item for item in items if item_id(item, self._get_id) != id],
            action,
            on_success=on_success,
            on_error=on_error,
            id=operation_id,
        )

    async def reorder(
        self,
        from_index: int,
        to_index: int,
        action: Callable[[], Awaitable[Any]],
        *,
        on_success: SuccessTransform[list[Any]] | None = None,
        on_error: ErrorTransform[list[Any]] | None = None,
        operation_id: str | None = None,
    ) -> Any:
        """Move the element at *from_index* to *to_index*.

        Raises:
            IndexError: *from_index* is out of range; nothing is applied.

        """

        def _move(items: list[Any]) -> list[Any]:
            moved = list(items)
            element = moved.pop(from_index)
            moved.insert(to_index, element)
            return moved

        return await self.optimistic(
            _move,
            action,
            on_success=on_success,
            on_error=on_error,
            id=operation_id,
        )

    def find(self, id: ItemId) -> Any | None:  # noqa: A002
        for item in self.value:
            if item_id(item, self._get_id) == id:
                return item
        return None

    def items(self) -> list[Any]:
        return list(self.value)
