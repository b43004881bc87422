"""
Cache backends for the base-wide stock snapshot.

Services receive a cache instance instead of reaching for module state, so
tests get an isolated cache and multi-instance deployments can point every
process at Redis via the REDIS_URL environment variable.
"""
import json
import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Callable, Optional, Protocol

import redis

from livebase.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class StockCache(Protocol):
    """Key/value store with per-entry expiry."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear_prefix(self, prefix: str) -> None: ...

    def clear(self) -> None: ...

    def stats(self) -> dict: ...


class SimpleCache:
    """In-memory cache with TTL support and size limit."""

    def __init__(self, max_entries: int = 10000, now_fn: Callable[[], datetime] = datetime.now):
        self.max_entries = max_entries
        self._now = now_fn
        self._cache: dict = {}
        self._expiry: dict = {}

    def _evict_expired(self):
        """Remove expired entries to reclaim memory."""
        now = self._now()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            self._cache.pop(k, None)
            self._expiry.pop(k, None)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key in self._cache:
            if self._now() < self._expiry.get(key, datetime.min):
                return self._cache[key]
            else:
                # Expired
                del self._cache[key]
                del self._expiry[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: int = 600):
        """Set value in cache with TTL."""
        if len(self._cache) >= self.max_entries:
            self._evict_expired()
        # If still at limit after eviction, remove oldest entries
        if len(self._cache) >= self.max_entries:
            oldest_keys = sorted(self._expiry, key=self._expiry.get)[:100]
            for k in oldest_keys:
                self._cache.pop(k, None)
                self._expiry.pop(k, None)
        self._cache[key] = value
        self._expiry[key] = self._now() + timedelta(seconds=ttl_seconds)

    def delete(self, key: str):
        """Delete key from cache."""
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    def clear_prefix(self, prefix: str):
        """Clear all keys with given prefix."""
        keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
        for key in keys_to_delete:
            self.delete(key)

    def clear(self):
        """Clear entire cache."""
        self._cache.clear()
        self._expiry.clear()

    def stats(self) -> dict:
        """Get cache statistics."""
        now = self._now()
        valid = sum(1 for k, exp in self._expiry.items() if exp > now)
        return {
            "backend": "memory",
            "total_keys": len(self._cache),
            "valid_keys": valid,
            "expired_keys": len(self._cache) - valid,
        }


class RedisStockCache:
    """Redis-backed cache with in-memory fallback.

    Values must be JSON-serialisable. Redis failures are logged and the call is
    served by the in-memory fallback so a Redis outage degrades to per-process
    caching instead of failing stock queries.
    """

    def __init__(self, client: "redis.Redis", fallback: Optional[SimpleCache] = None):
        self._redis = client
        self._fallback = fallback or SimpleCache()

    @classmethod
    def from_url(cls, redis_url: str, fallback: Optional[SimpleCache] = None) -> "RedisStockCache":
        client = redis.from_url(redis_url, socket_connect_timeout=2, decode_responses=True)
        return cls(client, fallback)

    def get(self, key: str) -> Optional[Any]:
        try:
            val = self._redis.get(key)
            return json.loads(val) if val else None
        except redis.RedisError as e:
            logger.warning("Redis get failed for %s, using memory cache: %s", key, e)
        return self._fallback.get(key)

    def set(self, key: str, value: Any, ttl_seconds: int = 600):
        serialized = json.dumps(value, default=str)
        try:
            self._redis.setex(key, ttl_seconds, serialized)
            return
        except redis.RedisError as e:
            logger.warning("Redis set failed for %s, using memory cache: %s", key, e)
        self._fallback.set(key, value, ttl_seconds)

    def delete(self, key: str):
        self._fallback.delete(key)
        try:
            self._redis.delete(key)
        except redis.RedisError as e:
            logger.warning("Redis delete failed for %s: %s", key, e)

    def clear_prefix(self, prefix: str):
        self._fallback.clear_prefix(prefix)
        try:
            cursor = 0
            while True:
                cursor, keys = self._redis.scan(cursor, match=f"{prefix}*", count=100)
                if keys:
                    self._redis.delete(*keys)
                if cursor == 0:
                    break
        except redis.RedisError as e:
            logger.warning("Redis prefix clear failed for %s: %s", prefix, e)

    def clear(self):
        self.clear_prefix(f"{CacheKeys.STOCK_SNAPSHOT}:")

    def stats(self) -> dict:
        try:
            keys = sum(1 for _ in self._redis.scan_iter(match=f"{CacheKeys.STOCK_SNAPSHOT}:*", count=100))
            return {"backend": "redis", "total_keys": keys}
        except redis.RedisError as e:
            logger.warning("Redis stats failed: %s", e)
            return {**self._fallback.stats(), "backend": "memory-fallback"}


class CacheKeys:
    STOCK_SNAPSHOT = "stock"


def stock_snapshot_prefix(base_id: int) -> str:
    return f"{CacheKeys.STOCK_SNAPSHOT}:{base_id}:"


def stock_snapshot_key(base_id: int, location_id: Optional[int] = None) -> str:
    """Cache key for the snapshot of one base, optionally restricted to one location."""
    return f"{stock_snapshot_prefix(base_id)}{location_id if location_id is not None else 'all'}"


def build_stock_cache(config: Settings) -> StockCache:
    """Pick the cache backend from settings."""
    fallback = SimpleCache(max_entries=config.stock_cache_max_entries)
    if config.redis_url:
        logger.info("Stock snapshot cache backed by Redis")
        return RedisStockCache.from_url(config.redis_url, fallback)
    return fallback


@lru_cache
def get_stock_cache() -> StockCache:
    """Process-wide cache used when a service is not handed one explicitly."""
    return build_stock_cache(get_settings())
