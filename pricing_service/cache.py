"""
Read-through cache for the pricing views

- Redis when reachable, JSON-encoded values with a TTL
- In-process TTL map when Redis is disabled (DISABLE_REDIS) or erroring
- Purely an optimization: callers must behave the same on a miss
"""
import fnmatch
import json
import logging
import os
import time
from threading import Lock
from typing import Any, Dict, Optional, Tuple

import redis
from redis.exceptions import RedisError

logger = logging.getLogger("pricing-service")

CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", 300))


class CacheService:
    """
    Cache with Redis as primary store and a thread-safe in-memory fallback
    """

    def __init__(self, client: Optional[redis.Redis], default_ttl: int = CACHE_TTL_SECONDS):
        self.client = client
        self.default_ttl = default_ttl
        self._fallback: Dict[str, Tuple[Any, float]] = {}
        self._lock = Lock()

    # --- in-process fallback ---
    def _fallback_get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key in self._fallback:
                value, expiry = self._fallback[key]
                if time.time() < expiry:
                    return value
                del self._fallback[key]
            return None

    def _fallback_set(self, key: str, value: Any, ttl: int):
        with self._lock:
            self._fallback[key] = (value, time.time() + ttl)

    def _fallback_delete(self, pattern: str):
        with self._lock:
            for key in [k for k in self._fallback if fnmatch.fnmatchcase(k, pattern)]:
                del self._fallback[key]

    # --- public API ---
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or None on a miss"""
        if self.client is None:
            return self._fallback_get(key)
        try:
            raw = self.client.get(key)
            return json.loads(raw) if raw else None
        except RedisError:
            logger.debug("Redis get failed for %s, using fallback", key, exc_info=True)
            return self._fallback_get(key)

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        ttl = ttl or self.default_ttl
        if self.client is None:
            self._fallback_set(key, value, ttl)
            return
        try:
            self.client.setex(key, ttl, json.dumps(value))
        except RedisError:
            logger.debug("Redis set failed for %s, using fallback", key, exc_info=True)
            self._fallback_set(key, value, ttl)

    def delete(self, key: str):
        # Fallback entries may exist from an earlier outage; always clear them
        self._fallback_delete(key)
        if self.client is None:
            return
        try:
            self.client.delete(key)
        except RedisError:
            logger.debug("Redis delete failed for %s", key, exc_info=True)

    def invalidate_pattern(self, pattern: str):
        """Drop every key matching a glob pattern such as `service:*`"""
        self._fallback_delete(pattern)
        if self.client is None:
            return
        try:
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
        except RedisError:
            logger.warning("Redis invalidation failed for pattern %s", pattern, exc_info=True)

    def health(self) -> Dict[str, bool]:
        if self.client is None:
            return {"redis": False, "fallback": True}
        try:
            self.client.ping()
            return {"redis": True, "fallback": False}
        except RedisError:
            return {"redis": False, "fallback": True}


def _redis_disabled() -> bool:
    return os.environ.get("DISABLE_REDIS", "false").lower() in ("1", "true", "yes")


def create_cache() -> CacheService:
    if _redis_disabled():
        logger.info("Redis is disabled via DISABLE_REDIS; using in-memory cache")
        return CacheService(client=None)
    client = redis.Redis(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", 6379)),
        decode_responses=True,
        socket_connect_timeout=1.0,
    )
    return CacheService(client=client)
