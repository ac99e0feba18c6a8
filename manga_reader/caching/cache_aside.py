"""
Cache-aside wrapper over a KVStore.

Reads go cache first; on a miss the loader hits the authoritative store and
the result is written back with a TTL. Writes go to the authoritative store
first and then invalidate the affected keys.

The cache is advisory. No failure in here ever blocks a read or a write:
read errors count as misses, write and delete errors are logged and dropped.
Loader errors are the caller's and propagate untouched.
"""
import threading
from typing import Any, Callable, Dict, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from manga_reader.data.kv_store import KVStore, KVStoreError
from manga_reader.utils.logger import get_logger

logger = get_logger("caching.cache_aside")

T = TypeVar("T")

# Keys deleted per DEL round-trip during pattern invalidation
DELETE_BATCH_SIZE = 500


class CacheStats:
    """Thread-safe hit/miss counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def record_hit(self):
        with self._lock:
            self.hits += 1

    def record_miss(self):
        with self._lock:
            self.misses += 1

    def record_error(self):
        with self._lock:
            self.errors += 1

    def hit_rate(self) -> float:
        """Hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    def summary(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate_pct": round(self.hit_rate(), 2),
        }


class CacheAside:
    """
    Generic get-or-load over a KVStore.

    Values are serialized as JSON through a pydantic TypeAdapter built from
    the schema passed to get_or_load (an entity model, List[Model], ...).
    """

    def __init__(self, store: KVStore):
        self.store = store
        self.stats = CacheStats()
        self._adapters: Dict[Any, TypeAdapter] = {}
        self._adapters_lock = threading.Lock()

    def _adapter(self, schema: Any) -> TypeAdapter:
        with self._adapters_lock:
            adapter = self._adapters.get(schema)
            if adapter is None:
                adapter = TypeAdapter(schema)
                self._adapters[schema] = adapter
            return adapter

    def get_or_load(self, key: str, loader: Callable[[], T], ttl: int, schema: Type[T]) -> T:
        """
        Return the cached value for key, or load, cache and return it.

        Args:
            key: Cache key
            loader: Zero-arg callable reading the authoritative store
            ttl: Seconds the populated entry lives
            schema: Type the cached JSON decodes into
        """
        adapter = self._adapter(schema)

        cached = self._read(key)
        if cached is not None:
            try:
                value = adapter.validate_json(cached)
                self.stats.record_hit()
                logger.debug("Cache hit: %s", key)
                return value
            except ValidationError as e:
                # Undecodable entry is treated as a miss and overwritten below
                logger.warning("Cache decode error for %s: %s", key, e.errors()[:1])

        self.stats.record_miss()
        logger.debug("Cache miss: %s", key)

        value = loader()
        self._write(key, adapter.dump_json(value).decode("utf-8"), ttl)
        return value

    def _read(self, key: str):
        try:
            return self.store.get(key)
        except KVStoreError as e:
            self.stats.record_error()
            logger.error("Cache read error for %s: %s", key, e)
            return None

    def _write(self, key: str, payload: str, ttl: int) -> None:
        try:
            self.store.set(key, payload, ttl)
        except KVStoreError as e:
            self.stats.record_error()
            logger.error("Cache write error for %s: %s", key, e)

    def invalidate(self, *keys: str) -> int:
        """Delete keys. Returns the number removed (0 on failure)."""
        if not keys:
            return 0
        try:
            removed = self.store.delete(*keys)
            logger.debug("Invalidated %d of %s", removed, list(keys))
            return removed
        except KVStoreError as e:
            self.stats.record_error()
            logger.error("Cache invalidation error for %s: %s", list(keys), e)
            return 0

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Scans for matching keys and deletes them in batches. Returns the
        number removed (0 on failure). Keys written after the scan survive;
        their TTL bounds the staleness.
        """
        try:
            keys = list(self.store.scan_keys(pattern))
            removed = 0
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                removed += self.store.delete(*keys[start:start + DELETE_BATCH_SIZE])
            logger.debug("Invalidated %d keys matching %s", removed, pattern)
            return removed
        except KVStoreError as e:
            self.stats.record_error()
            logger.error("Cache pattern invalidation error for %s: %s", pattern, e)
            return 0
