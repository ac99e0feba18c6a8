"""
Key-value / ranking store.

The core only talks to the KVStore protocol: plain string get/set/delete/
exists/incr, sorted-set add/increment/range-with-scores, and a key scan for
pattern invalidation. RedisStore is the production implementation;
InMemoryStore reproduces Redis semantics (TTL expiry, single-command
atomicity, ZREVRANGE tie order) for tests and local runs.

Redis is ONLY a cache and a counter store, never the source of truth.
"""
import fnmatch
import threading
import time
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple

import redis

from manga_reader.core.config import ReaderConfig
from manga_reader.utils.logger import get_logger

logger = get_logger("data.kv_store")


class KVStoreError(RuntimeError):
    """Raised when the KV store cannot complete an operation."""


class KVStore(Protocol):
    def ping(self) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    def delete(self, *keys: str) -> int: ...

    def exists(self, key: str) -> bool: ...

    def incr(self, key: str) -> int: ...

    def incr_by(self, key: str, amount: int) -> int: ...

    def zadd(self, key: str, score: float, member: str) -> None: ...

    def zincrby(self, key: str, increment: float, member: str) -> float: ...

    def zincrby_multi(self, keys: List[str], increment: float, member: str) -> None: ...

    def zrevrange_with_scores(self, key: str, start: int, stop: int) -> List[Tuple[str, float]]: ...

    def zscore(self, key: str, member: str) -> Optional[float]: ...

    def scan_keys(self, pattern: str) -> Iterator[str]: ...


class RedisStore:
    """
    KVStore backed by Redis.

    Every redis-py error is re-raised as KVStoreError so callers handle one
    exception type regardless of backend.
    """

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_config(cls, config: ReaderConfig) -> "RedisStore":
        """
        Build a client from configuration.

        Connection priority:
        1. redis_url (e.g. rediss:// for hosted Redis)
        2. redis_host + redis_port + redis_db
        """
        if config.redis_url:
            client = redis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_connect_timeout=config.redis_socket_timeout,
                socket_timeout=config.redis_socket_timeout,
            )
        else:
            client = redis.Redis(
                host=config.redis_host,
                port=config.redis_port,
                db=config.redis_db,
                password=config.redis_password or None,
                decode_responses=True,
                socket_connect_timeout=config.redis_socket_timeout,
                socket_timeout=config.redis_socket_timeout,
            )
        return cls(client)

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            raise KVStoreError(f"GET {key} failed: {e}") from e

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            if ttl_seconds:
                self.client.setex(key, ttl_seconds, value)
            else:
                self.client.set(key, value)
        except redis.RedisError as e:
            raise KVStoreError(f"SET {key} failed: {e}") from e

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self.client.delete(*keys))
        except redis.RedisError as e:
            raise KVStoreError(f"DEL {' '.join(keys)} failed: {e}") from e

    def exists(self, key: str) -> bool:
        try:
            return bool(self.client.exists(key))
        except redis.RedisError as e:
            raise KVStoreError(f"EXISTS {key} failed: {e}") from e

    def incr(self, key: str) -> int:
        try:
            return int(self.client.incr(key))
        except redis.RedisError as e:
            raise KVStoreError(f"INCR {key} failed: {e}") from e

    def incr_by(self, key: str, amount: int) -> int:
        try:
            return int(self.client.incrby(key, amount))
        except redis.RedisError as e:
            raise KVStoreError(f"INCRBY {key} failed: {e}") from e

    def zadd(self, key: str, score: float, member: str) -> None:
        try:
            self.client.zadd(key, {member: score})
        except redis.RedisError as e:
            raise KVStoreError(f"ZADD {key} failed: {e}") from e

    def zincrby(self, key: str, increment: float, member: str) -> float:
        try:
            return float(self.client.zincrby(key, increment, member))
        except redis.RedisError as e:
            raise KVStoreError(f"ZINCRBY {key} failed: {e}") from e

    def zincrby_multi(self, keys: List[str], increment: float, member: str) -> None:
        """ZINCRBY the same member in several sorted sets inside one MULTI/EXEC."""
        try:
            pipe = self.client.pipeline(transaction=True)
            for key in keys:
                pipe.zincrby(key, increment, member)
            pipe.execute()
        except redis.RedisError as e:
            raise KVStoreError(f"ZINCRBY {', '.join(keys)} failed: {e}") from e

    def zrevrange_with_scores(self, key: str, start: int, stop: int) -> List[Tuple[str, float]]:
        try:
            rows = self.client.zrevrange(key, start, stop, withscores=True)
        except redis.RedisError as e:
            raise KVStoreError(f"ZREVRANGE {key} failed: {e}") from e
        return [(member, float(score)) for member, score in rows]

    def zscore(self, key: str, member: str) -> Optional[float]:
        try:
            score = self.client.zscore(key, member)
        except redis.RedisError as e:
            raise KVStoreError(f"ZSCORE {key} failed: {e}") from e
        return float(score) if score is not None else None

    def scan_keys(self, pattern: str) -> Iterator[str]:
        try:
            # Materialize so a mid-scan failure surfaces here, not in the caller's loop
            return iter(list(self.client.scan_iter(match=pattern, count=100)))
        except redis.RedisError as e:
            raise KVStoreError(f"SCAN {pattern} failed: {e}") from e


class InMemoryStore:
    """
    Thread-safe in-process KVStore.

    Each method holds one lock for its whole body, matching Redis' guarantee
    that a single command is atomic. String keys honour TTLs against the
    injected clock; sorted sets never expire.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._strings: Dict[str, Tuple[str, Optional[float]]] = {}
        self._zsets: Dict[str, Dict[str, float]] = {}

    def ping(self) -> bool:
        return True

    def _live_string(self, key: str) -> Optional[str]:
        entry = self._strings.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._strings[key]
            return None
        return value

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if key in self._zsets:
                raise KVStoreError(f"GET {key}: wrong type")
            return self._live_string(key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._zsets.pop(key, None)
            self._strings[key] = (value, expires_at)

    def delete(self, *keys: str) -> int:
        with self._lock:
            removed = 0
            for key in keys:
                if self._live_string(key) is not None:
                    del self._strings[key]
                    removed += 1
                elif self._zsets.pop(key, None) is not None:
                    removed += 1
            return removed

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_string(key) is not None or key in self._zsets

    def incr(self, key: str) -> int:
        return self.incr_by(key, 1)

    def incr_by(self, key: str, amount: int) -> int:
        with self._lock:
            if key in self._zsets:
                raise KVStoreError(f"INCRBY {key}: wrong type")
            current = self._live_string(key)
            try:
                value = int(current or 0) + amount
            except ValueError:
                raise KVStoreError(f"INCRBY {key}: value is not an integer")
            expires_at = self._strings[key][1] if current is not None else None
            self._strings[key] = (str(value), expires_at)
            return value

    def _check_zset(self, command: str, key: str) -> None:
        if self._live_string(key) is not None:
            raise KVStoreError(f"{command} {key}: wrong type")

    def zadd(self, key: str, score: float, member: str) -> None:
        with self._lock:
            self._check_zset("ZADD", key)
            self._zsets.setdefault(key, {})[member] = float(score)

    def zincrby(self, key: str, increment: float, member: str) -> float:
        with self._lock:
            self._check_zset("ZINCRBY", key)
            zset = self._zsets.setdefault(key, {})
            zset[member] = zset.get(member, 0.0) + increment
            return zset[member]

    def zincrby_multi(self, keys: List[str], increment: float, member: str) -> None:
        with self._lock:
            for key in keys:
                self._check_zset("ZINCRBY", key)
            for key in keys:
                zset = self._zsets.setdefault(key, {})
                zset[member] = zset.get(member, 0.0) + increment

    def zrevrange_with_scores(self, key: str, start: int, stop: int) -> List[Tuple[str, float]]:
        with self._lock:
            zset = self._zsets.get(key, {})
            # Redis orders equal scores by member; ZREVRANGE reverses both
            ordered = sorted(zset.items(), key=lambda item: (item[1], item[0]), reverse=True)
            if stop < 0:
                stop = len(ordered) + stop
            return ordered[start:stop + 1]

    def zscore(self, key: str, member: str) -> Optional[float]:
        with self._lock:
            return self._zsets.get(key, {}).get(member)

    def scan_keys(self, pattern: str) -> Iterator[str]:
        with self._lock:
            live = [k for k in list(self._strings) if self._live_string(k) is not None]
            keys = live + list(self._zsets)
        return iter([k for k in keys if fnmatch.fnmatchcase(k, pattern)])

    def flush(self) -> None:
        with self._lock:
            self._strings.clear()
            self._zsets.clear()
