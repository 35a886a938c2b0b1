"""
Auction Comparator - In-flight request deduplication

Concurrent comparisons of the same product (same strict signature) share a
single web search instead of each hitting the provider. The shared task is
cancelled once every caller waiting on it has been cancelled.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class InflightRegistry:
    """
    Usage:
        registry = InflightRegistry()
        results, was_deduped = await registry.run(signature, lambda: search(query))
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """
        Await the in-flight call for key, starting one if none is running.

        Returns:
            (result, was_deduped). Exceptions raised by the shared call
            propagate to every waiter.
        """
        task = self._tasks.get(key)
        was_deduped = task is not None
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            self._waiters[key] = 0
            task.add_done_callback(lambda _t, k=key: self._forget(k, _t))
        else:
            logger.debug("inflight_deduplicated", key=key[:16], source="inflight")

        self._waiters[key] += 1
        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                self._waiters[key] -= 1
                if self._waiters[key] <= 0:
                    task.cancel()
            raise
        return result, was_deduped

    def _forget(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
            self._waiters.pop(key, None)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("inflight_failed", key=key[:16], error=str(task.exception()), source="inflight")
