"""Cache-aside layer and cache key/TTL policy."""
from manga_reader.caching.cache_aside import CacheAside, CacheStats
from manga_reader.caching.cache_policy import TTLPolicy

__all__ = ["CacheAside", "CacheStats", "TTLPolicy"]
