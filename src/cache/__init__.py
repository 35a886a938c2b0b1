from src.cache.comparison_cache import CacheEntry, ComparisonCache
from src.cache.inflight import InflightRegistry
from src.cache.keys import generate_cache_key
from src.cache.lru import LRUTTLStore

__all__ = [
    "CacheEntry",
    "ComparisonCache",
    "InflightRegistry",
    "LRUTTLStore",
    "generate_cache_key",
]
