"""
Auction Comparator - Thread-safe LRU store with per-entry TTL

Backing store for the normalization memo and the comparison cache.
Expired entries are dropped lazily on read and in purge_expired().
One lock guards the map and its recency order.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, NamedTuple, TypeVar

V = TypeVar("V")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredItem(NamedTuple):
    value: Any
    stored_at: datetime
    expires_at: datetime


class LRUTTLStore(Generic[V]):
    """
    Bounded mapping with least-recently-used eviction and TTL expiry.

    Usage:
        store: LRUTTLStore[str] = LRUTTLStore(max_entries=100, default_ttl=3600)
        store.set("k", "v")
        store.get("k")
    """

    def __init__(
        self,
        max_entries: int,
        default_ttl: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock or utc_now
        self._items: OrderedDict[str, StoredItem] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def now(self) -> datetime:
        return self._clock()

    def get(self, key: str) -> V | None:
        item = self.get_item(key)
        return item.value if item is not None else None

    def get_item(self, key: str) -> StoredItem | None:
        """Return the stored item and mark it most recently used."""
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            if self._clock() >= item.expires_at:
                del self._items[key]
                return None
            self._items.move_to_end(key)
            return item

    def set(self, key: str, value: V, ttl: float | None = None) -> StoredItem:
        """Store a value; evicts the least recently used entries past capacity."""
        now = self._clock()
        item = StoredItem(
            value=value,
            stored_at=now,
            expires_at=now + timedelta(seconds=self.default_ttl if ttl is None else ttl),
        )
        with self._lock:
            self._items[key] = item
            self._items.move_to_end(key)
            while len(self._items) > self.max_entries:
                self._items.popitem(last=False)
        return item

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, item in self._items.items() if now >= item.expires_at]
            for key in expired:
                del self._items[key]
        return len(expired)
