"""Best-effort latest-rate cache in front of the durable store.

The cache never raises to its callers: every backend failure is logged and
turned into a miss or a no-op, since the store remains authoritative.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Optional, Protocol

import redis

from .rate_store import LatestRateRecord

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "rates:"
DEFAULT_TTL_SECONDS = 3600
DEFAULT_LRU_CAPACITY = 1000


class CacheError(RuntimeError):
    """Raised by a cache backend when it cannot serve a request."""


class CacheBackend(Protocol):
    name: str

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete(self, *keys: str) -> None: ...

    def keys(self, pattern: str) -> list[str]: ...


class InMemoryLRUCache:
    """Bounded in-process substitute for Redis with per-key expiry."""

    name = "memory"

    def __init__(
        self,
        capacity: int = DEFAULT_LRU_CAPACITY,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self._capacity:
                self._entries.popitem(last=False)
            self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def keys(self, pattern: str) -> list[str]:
        with self._lock:
            return [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]


class RedisCacheBackend:
    """Adapter translating redis-py errors into ``CacheError``."""

    name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.set(key, value, ex=ttl_seconds)
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._client.delete(*keys)
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc

    def keys(self, pattern: str) -> list[str]:
        try:
            found = list(self._client.scan_iter(match=pattern))
        except redis.RedisError as exc:
            raise CacheError(str(exc)) from exc
        return [key.decode("utf-8") if isinstance(key, bytes) else key for key in found]


class RateCache:
    """Pair-keyed cache of ``LatestRateRecord`` values."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._backend = backend
        self._ttl_seconds = ttl_seconds

    @property
    def backend_name(self) -> str:
        return self._backend.name

    def get(self, pair: str) -> Optional[LatestRateRecord]:
        try:
            raw = self._backend.get(self._key(pair))
            if raw is None:
                return None
            return LatestRateRecord.from_dict(json.loads(raw))
        except (CacheError, ValueError, TypeError, KeyError) as exc:
            logger.warning("Cache read error for %s: %s", pair, exc)
            return None

    def set(self, pair: str, record: LatestRateRecord, ttl_seconds: Optional[int] = None) -> bool:
        try:
            payload = json.dumps(record.to_dict())
            self._backend.set(self._key(pair), payload, ttl_seconds or self._ttl_seconds)
        except (CacheError, ValueError, TypeError) as exc:
            logger.warning("Cache write error for %s: %s", pair, exc)
            return False
        return True

    def invalidate(self, pair: str) -> bool:
        try:
            self._backend.delete(self._key(pair))
        except CacheError as exc:
            logger.warning("Cache delete error for %s: %s", pair, exc)
            return False
        return True

    def invalidate_all(self) -> bool:
        try:
            keys = self._backend.keys(f"{CACHE_NAMESPACE}*")
            if keys:
                self._backend.delete(*keys)
        except CacheError as exc:
            logger.warning("Cache clear error: %s", exc)
            return False
        return True

    @staticmethod
    def _key(pair: str) -> str:
        return f"{CACHE_NAMESPACE}{pair.upper()}"


def build_rate_cache(
    redis_url: Optional[str],
    *,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    capacity: int = DEFAULT_LRU_CAPACITY,
) -> RateCache:
    """Connect to Redis when configured, otherwise fall back to the in-process LRU."""

    if not redis_url:
        logger.info("Redis not configured; using in-memory LRU rate cache.")
        return RateCache(InMemoryLRUCache(capacity), ttl_seconds=ttl_seconds)

    client = redis.Redis.from_url(redis_url, socket_connect_timeout=3, socket_timeout=3)
    try:
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable at startup (%s); using in-memory LRU rate cache.", exc)
        return RateCache(InMemoryLRUCache(capacity), ttl_seconds=ttl_seconds)

    logger.info("Rate cache connected to Redis.")
    return RateCache(RedisCacheBackend(client), ttl_seconds=ttl_seconds)
