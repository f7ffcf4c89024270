"""In-memory and offline (Redis) caches used by the preloaders."""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import redis
from redis.exceptions import RedisError

from core.exceptions import CacheError
from settings import CacheSettings, RedisSettings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def create_redis_client(settings: RedisSettings) -> redis.Redis:
    return redis.Redis(
        host=settings.host,
        port=settings.port,
        db=settings.db,
        password=settings.password,
        ssl=settings.ssl,
        decode_responses=True,
    )


class MemoryCache:
    """Size- and age-bounded cache. Evicts the oldest inserted entry first."""

    def __init__(
        self,
        max_items: int = 100,
        max_age_seconds: float = 3600.0,
        clock: Clock = time.time,
    ):
        self.max_items = max_items
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.max_age_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        # Re-inserting counts as a fresh insertion for eviction order
        self._entries.pop(key, None)
        self._entries[key] = (self._clock(), value)
        while len(self._entries) > self.max_items:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class OfflineCache:
    """Persistent cache on a Redis-compatible key-value store.

    Each value is stored as JSON together with the time it was stored and
    the cache version. Entries from another version or older than
    ``max_age_seconds`` read as misses and are deleted. A sorted-set index
    ordered by store time bounds the number of entries.

    Every store failure is raised as ``CacheError``; callers treat it as a
    miss.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str,
        max_items: int = 200,
        max_age_seconds: float = 7 * 24 * 60 * 60.0,
        version: str = "1.0",
        key_prefix: str = "offline",
        clock: Clock = time.time,
    ):
        self._redis = redis_client
        self.namespace = namespace
        self.max_items = max_items
        self.max_age_seconds = max_age_seconds
        self.version = version
        self._key_prefix = f"{key_prefix}:{namespace}"
        self._index_key = f"{self._key_prefix}:index"
        self._clock = clock

    @classmethod
    def from_settings(
        cls, redis_client: redis.Redis, namespace: str, settings: CacheSettings
    ) -> "OfflineCache":
        return cls(
            redis_client,
            namespace,
            max_items=settings.offline_max_items,
            max_age_seconds=settings.offline_max_age_seconds,
            version=settings.version,
            key_prefix=settings.key_prefix,
        )

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def get(self, key: str) -> Any | None:
        """Return the cached value or None on a miss.

        Raises:
            CacheError: If the store is unreachable or the entry is corrupt.
        """
        try:
            raw = self._redis.get(self._key(key))
        except RedisError as e:
            raise CacheError(f"Offline cache read failed: {e}", details={"key": key}) from e

        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            value = entry["value"]
            stored_at = float(entry["stored_at"])
            version = entry["version"]
        except (ValueError, TypeError, KeyError) as e:
            self.delete(key)
            raise CacheError(f"Corrupt offline cache entry: {key}", details={"key": key}) from e

        if version != self.version or self._clock() - stored_at > self.max_age_seconds:
            logger.debug(f"Discarding outdated offline cache entry {key}")
            self.delete(key)
            return None

        return value

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value.

        Raises:
            CacheError: If the value cannot be serialized or the store fails.
        """
        stored_at = self._clock()
        try:
            payload = json.dumps({"value": value, "stored_at": stored_at, "version": self.version})
        except (TypeError, ValueError) as e:
            raise CacheError(f"Value for {key} is not serializable", details={"key": key}) from e

        try:
            self._redis.set(self._key(key), payload, ex=max(1, int(self.max_age_seconds)))
            self._redis.zadd(self._index_key, {key: stored_at})
            self._evict()
        except RedisError as e:
            raise CacheError(f"Offline cache write failed: {e}", details={"key": key}) from e

    def delete(self, key: str) -> None:
        try:
            self._discard(key)
        except RedisError as e:
            raise CacheError(f"Offline cache delete failed: {e}", details={"key": key}) from e

    def _discard(self, key: str) -> None:
        self._redis.delete(self._key(key))
        self._redis.zrem(self._index_key, key)

    def _evict(self) -> None:
        count = self._redis.zcard(self._index_key)
        overflow = count - self.max_items
        if overflow <= 0:
            return
        for member in self._redis.zrange(self._index_key, 0, overflow - 1):
            key = member.decode() if isinstance(member, bytes) else member
            self._discard(key)
        logger.debug(f"Evicted {overflow} entries from offline cache {self.namespace}")
