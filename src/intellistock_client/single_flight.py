from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Keyed map of in-flight tasks; callers for a busy key await the same task."""

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Task[Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    def start(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        task = self._inflight.get(key)
        if task is not None:
            return task
        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return task

    def restart(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Start a new task for ``key`` even if one is running; later callers join the new one."""
        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        task.add_done_callback(lambda done, key=key: self._forget(key, done))
        return task

    async def do(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        # shield: one cancelled waiter must not cancel the shared lookup
        return await asyncio.shield(self.start(key, factory))

    def cancel_all(self) -> None:
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()

    def _forget(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # retrieved so an unawaited failure does not warn at shutdown
            task.exception()
