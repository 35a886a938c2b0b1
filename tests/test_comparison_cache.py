"""Tests for the strict/loose comparison cache (TTL, LRU, re-put, purge)."""

from __future__ import annotations

import pytest

from src.cache.comparison_cache import ComparisonCache
from src.config import CompareSource


@pytest.fixture
def cache(clock) -> ComparisonCache:
    return ComparisonCache(max_entries=10, default_ttl=24 * 3600, loose_max_age=6 * 3600, clock=clock)


class TestTieredLookup:
    def test_strict_hit(self, cache, make_response) -> None:
        entry = cache.put("strict-new", make_response(), loose_key="loose")

        hit = cache.get("strict-new", "loose")

        assert hit is not None
        assert hit.cache.source == CompareSource.CACHE_STRICT
        assert hit.cache.cache_entry_id == entry.entry_id
        assert hit.cache.signature_used == "strict-new"
        assert hit.cache.fetched_at == entry.cached_at
        assert hit.cache.expires_at == entry.expires_at

    def test_loose_hit_on_strict_miss(self, cache, make_response) -> None:
        """Same product in another condition is served from the loose tier."""
        cache.put("strict-new", make_response(), loose_key="loose")

        hit = cache.get("strict-used", "loose")

        assert hit is not None
        assert hit.cache.source == CompareSource.CACHE_LOOSE
        assert hit.cache.signature_used == "loose"

    def test_no_loose_key_means_strict_only(self, cache, make_response) -> None:
        cache.put("strict-new", make_response(), loose_key="loose")
        assert cache.get("strict-used") is None

    def test_loose_tier_ignores_old_entries(self, cache, make_response, clock) -> None:
        cache.put("strict-new", make_response(), loose_key="loose")
        clock.advance(6 * 3600 + 1)

        assert cache.get("strict-used", "loose") is None
        assert cache.get("strict-new", "loose").cache.source == CompareSource.CACHE_STRICT

    def test_loose_tier_prefers_newest(self, cache, make_response, clock) -> None:
        cache.put("strict-a", make_response(query="older"), loose_key="loose")
        clock.advance(10)
        cache.put("strict-b", make_response(query="newer"), loose_key="loose")

        assert cache.get("strict-c", "loose").query_used == "newer"

    def test_miss(self, cache) -> None:
        assert cache.get("unknown", "unknown") is None

    def test_hit_is_a_copy(self, cache, make_response) -> None:
        cache.put("k", make_response())
        cache.get("k").results.clear()
        assert len(cache.get("k").results) == 3


class TestExpiry:
    def test_default_ttl(self, cache, make_response, clock) -> None:
        cache.put("k", make_response())
        clock.advance(24 * 3600 - 1)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_custom_ttl(self, cache, make_response, clock) -> None:
        cache.put("k", make_response(), ttl=60)
        clock.advance(61)
        assert cache.get("k") is None

    def test_expired_strict_entry_not_served_loose(self, cache, make_response, clock) -> None:
        cache.put("k", make_response(), ttl=60, loose_key="loose")
        clock.advance(61)
        assert cache.get("other", "loose") is None

    def test_purge_expired(self, cache, make_response, clock) -> None:
        cache.put("short", make_response(), ttl=10)
        cache.put("long", make_response(), ttl=100)
        clock.advance(50)

        assert cache.purge_expired() == 1
        assert len(cache) == 1
        assert cache.get("long") is not None


class TestEviction:
    def test_least_recently_used_evicted(self, make_response, clock) -> None:
        cache = ComparisonCache(max_entries=2, clock=clock)
        cache.put("a", make_response())
        cache.put("b", make_response())
        cache.get("a")
        cache.put("c", make_response())

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None

    def test_loose_hit_refreshes_recency(self, make_response, clock) -> None:
        cache = ComparisonCache(max_entries=2, clock=clock)
        cache.put("a", make_response(), loose_key="la")
        cache.put("b", make_response())
        cache.get("a-other", "la")
        cache.put("c", make_response())

        assert cache.get("a") is not None
        assert cache.get("b") is None

    def test_eviction_clears_loose_index(self, make_response, clock) -> None:
        cache = ComparisonCache(max_entries=1, clock=clock)
        cache.put("a", make_response(), loose_key="la")
        cache.put("b", make_response())
        assert cache.get("x", "la") is None

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError):
            ComparisonCache(max_entries=0)


class TestMutation:
    def test_reput_keeps_entry_id(self, cache, make_response) -> None:
        first = cache.put("k", make_response(query="v1"))
        second = cache.put("k", make_response(query="v2"))

        assert second.entry_id == first.entry_id
        assert cache.get("k").query_used == "v2"
        assert len(cache) == 1

    def test_reput_resets_ttl(self, cache, make_response, clock) -> None:
        cache.put("k", make_response(), ttl=100)
        clock.advance(90)
        cache.put("k", make_response(), ttl=100)
        clock.advance(90)
        assert cache.get("k") is not None

    def test_reput_moves_loose_index(self, cache, make_response) -> None:
        cache.put("k", make_response(), loose_key="l1")
        cache.put("k", make_response(), loose_key="l2")

        assert cache.get("x", "l1") is None
        assert cache.get("x", "l2") is not None

    def test_distinct_entries_get_distinct_ids(self, cache, make_response) -> None:
        assert cache.put("a", make_response()).entry_id != cache.put("b", make_response()).entry_id

    def test_invalidate(self, cache, make_response) -> None:
        cache.put("k", make_response(), loose_key="loose")

        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        assert cache.get("other", "loose") is None

    def test_clear(self, cache, make_response) -> None:
        cache.put("a", make_response(), loose_key="l")
        cache.put("b", make_response())
        cache.clear()

        assert len(cache) == 0
        assert cache.get("x", "l") is None
