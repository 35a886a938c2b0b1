"""
Auction Comparator - Live Lot Updates

Re-extracts a lot while the page changes (new bids) and reports real
changes. One asyncio task per watcher:

- notify() signals "the page changed"; bursts inside the debounce window
  collapse into one re-extraction
- a re-extraction always finishes before the next one starts
- on_change is awaited only when bid, total or title actually changed
- close() cancels the pending debounce and any running extraction
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable

import structlog

from src.models.auction import AuctionData
from src.scraper.adapters import SiteAdapter
from src.scraper.extractor import has_data_changed

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[AuctionData], Awaitable[None]]


class LiveUpdateWatcher:
    """
    Usage:
        async with LiveUpdateWatcher(adapter, on_change, initial=data) as watcher:
            page.on("framenavigated", lambda _: watcher.notify())
            ...
    """

    def __init__(
        self,
        adapter: SiteAdapter,
        on_change: ChangeHandler,
        *,
        initial: AuctionData | None = None,
        debounce_ms: int | None = None,
    ) -> None:
        self.adapter = adapter
        self.on_change = on_change
        self.current = initial
        if debounce_ms is None:
            debounce_ms = adapter.get_mutation_config().debounce_ms
        self.debounce_seconds = debounce_ms / 1000
        self._changed = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._closed:
            raise RuntimeError("watcher is closed")
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
            logger.info("live_watcher_started", adapter=self.adapter.id, source="live_observer")

    def notify(self) -> None:
        """Signal a page mutation. Ignored once closed."""
        if not self._closed:
            self._changed.set()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("live_watcher_closed", adapter=self.adapter.id, source="live_observer")

    async def __aenter__(self) -> LiveUpdateWatcher:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def _run(self) -> None:
        while True:
            await self._changed.wait()
            await self._debounce()
            await self._refresh()

    async def _debounce(self) -> None:
        """Return once no notification arrived for a full debounce window."""
        while True:
            self._changed.clear()
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=self.debounce_seconds)
            except asyncio.TimeoutError:
                return

    async def _refresh(self) -> None:
        try:
            data = await self.adapter.extract_data()
        except Exception as e:
            logger.warning("live_watcher_extract_failed", error=str(e), source="live_observer")
            return

        if data is None or not has_data_changed(self.current, data):
            return

        logger.info(
            "live_watcher_data_changed",
            old_bid=str(self.current.current_bid) if self.current else None,
            new_bid=str(data.current_bid),
            source="live_observer",
        )
        self.current = data
        try:
            await self.on_change(data)
        except Exception as e:
            logger.error("live_watcher_handler_failed", error=str(e), source="live_observer")
