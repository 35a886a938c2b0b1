"""
Auction Comparator - Comparison Cache

Signature-keyed store of CompareResponses with tiered lookup:

1. strict signature (exact product identity incl. condition grade)
2. loose signature (same product, any condition), only for entries cached
   within CACHE_LOOSE_MAX_AGE_SECONDS

Every hit returns a copy whose CacheMetadata records the tier that served
it, so callers know a loose hit must be re-scored. Entries expire after
their TTL (default 24h) and the least recently used entry is evicted once
max_entries is exceeded.

A single threading.Lock guards the entry map, the loose index and the
recency order, so the cache can be shared by threads and event loops.

Usage:
    cache = ComparisonCache()
    cache.put(signatures.strict, response, loose_key=signatures.loose)
    hit = cache.get(signatures.strict, signatures.loose)
"""

from __future__ import annotations

import threading
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable

import structlog
from pydantic import BaseModel

from src.cache.lru import utc_now
from src.config import CompareSource, settings
from src.models.comparison import CacheMetadata, CompareResponse

logger = structlog.get_logger(__name__)


class CacheEntry(BaseModel):
    key: str
    value: CompareResponse
    cached_at: datetime
    expires_at: datetime
    loose_key: str | None = None
    entry_id: str


class ComparisonCache:
    """In-memory comparison cache with strict/loose lookup, TTL and LRU eviction."""

    def __init__(
        self,
        max_entries: int | None = None,
        default_ttl: float | None = None,
        loose_max_age: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.max_entries = max_entries if max_entries is not None else settings.CACHE_MAX_ENTRIES
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {self.max_entries}")
        self.default_ttl = default_ttl if default_ttl is not None else settings.CACHE_DEFAULT_TTL_SECONDS
        self.loose_max_age = (
            loose_max_age if loose_max_age is not None else settings.CACHE_LOOSE_MAX_AGE_SECONDS
        )
        self._clock = clock or utc_now
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._loose_index: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    def get(self, strict_key: str, loose_key: str | None = None) -> CompareResponse | None:
        """
        Look up a comparison, strict signature first.

        Args:
            strict_key: Strict product signature.
            loose_key: Loose product signature, tried only on a strict miss.

        Returns:
            A copy of the cached response tagged with the serving tier
            (cache_strict or cache_loose), or None on a miss.
        """
        now = self._clock()
        with self._lock:
            entry = self._live_entry(strict_key, now)
            if entry is not None:
                self._entries.move_to_end(strict_key)
                source = CompareSource.CACHE_STRICT
            elif loose_key is not None:
                entry = self._loose_entry(loose_key, now)
                if entry is None:
                    return None
                self._entries.move_to_end(entry.key)
                source = CompareSource.CACHE_LOOSE
            else:
                return None

            metadata = CacheMetadata(
                source=source,
                cache_entry_id=entry.entry_id,
                fetched_at=entry.cached_at,
                expires_at=entry.expires_at,
                signature_used=entry.key if source == CompareSource.CACHE_STRICT else loose_key,
            )
            tagged = entry.value.model_copy(update={"cache": metadata}, deep=True)

        logger.debug(
            "comparison_cache_hit",
            tier=source.value,
            entry_id=metadata.cache_entry_id,
            source="comparison_cache",
        )
        return tagged

    def _live_entry(self, key: str, now: datetime) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            self._remove(key)
            return None
        return entry

    def _loose_entry(self, loose_key: str, now: datetime) -> CacheEntry | None:
        max_age = timedelta(seconds=self.loose_max_age)
        best: CacheEntry | None = None
        for key in list(self._loose_index.get(loose_key, [])):
            entry = self._live_entry(key, now)
            if entry is None or now - entry.cached_at > max_age:
                continue
            if best is None or entry.cached_at > best.cached_at:
                best = entry
        return best

    # -----------------------------------------------------------------------
    # Mutation
    # -----------------------------------------------------------------------

    def put(
        self,
        strict_key: str,
        response: CompareResponse,
        ttl: float | None = None,
        *,
        loose_key: str | None = None,
    ) -> CacheEntry:
        """
        Store a response under its strict signature.

        Args:
            strict_key: Strict product signature.
            response: Comparison to cache.
            ttl: Lifetime in seconds (defaults to default_ttl).
            loose_key: Loose signature to index the entry under.

        Returns:
            The stored CacheEntry. Re-putting a strict key replaces the
            previous entry and keeps its entry id.
        """
        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            previous = self._entries.get(strict_key)
            entry_id = previous.entry_id if previous is not None else uuid.uuid4().hex
            if previous is not None:
                self._remove(strict_key)

            entry = CacheEntry(
                key=strict_key,
                value=response.model_copy(deep=True),
                cached_at=now,
                expires_at=now + timedelta(seconds=lifetime),
                loose_key=loose_key,
                entry_id=entry_id,
            )
            self._entries[strict_key] = entry
            if loose_key is not None:
                self._loose_index.setdefault(loose_key, []).append(strict_key)

            evicted = 0
            while len(self._entries) > self.max_entries:
                oldest = next(iter(self._entries))
                self._remove(oldest)
                evicted += 1

        logger.debug(
            "comparison_cache_put",
            entry_id=entry_id,
            ttl_seconds=lifetime,
            evicted=evicted,
            source="comparison_cache",
        )
        return entry

    def invalidate(self, strict_key: str) -> bool:
        with self._lock:
            if strict_key not in self._entries:
                return False
            self._remove(strict_key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._loose_index.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                self._remove(key)
        if expired:
            logger.info("comparison_cache_purged", removed=len(expired), source="comparison_cache")
        return len(expired)

    def _remove(self, strict_key: str) -> None:
        """Drop an entry and its loose index slot. Caller holds the lock."""
        entry = self._entries.pop(strict_key, None)
        if entry is None or entry.loose_key is None:
            return
        keys = self._loose_index.get(entry.loose_key)
        if keys is None:
            return
        if strict_key in keys:
            keys.remove(strict_key)
        if not keys:
            del self._loose_index[entry.loose_key]
