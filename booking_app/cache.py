"""
Redis caching utilities for availability lookups and health reporting
Every operation fails open: a Redis outage turns into cache misses, never errors
"""
import json
import logging
import os
import time
from typing import Any, Optional

import redis

from .config import CACHE_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# After a failed connect, wait this long before trying again
RECONNECT_COOLDOWN_SECONDS = 60


def mask_redis_url(redis_url: str) -> str:
    """Hide credentials before a Redis URL reaches the logs"""
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        return f"{protocol}:****@{url_parts[1]}"
    return "****"


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Uses REDIS_URL when set, otherwise the individual REDIS_* settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for cache...")

        if REDIS_URL:
            logger.info(f"📡 Using Redis URL connection: {mask_redis_url(REDIS_URL)}")
            client = redis.from_url(
                REDIS_URL,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        else:
            client = redis.Redis(
                host=os.getenv("REDIS_HOST", "localhost"),
                port=int(os.getenv("REDIS_PORT", "6379")),
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )

        client.ping()
        redis_client = client
        logger.info("✅ Redis connected successfully")

    return redis_client


class Cache:
    """Redis cache wrapper with automatic JSON serialization"""

    def __init__(self, enabled: bool = CACHE_ENABLED):
        self.enabled = enabled
        self.redis_client = None
        self._retry_after = 0.0

    def _get_client(self):
        """Lazy load Redis client"""
        if not self.enabled:
            return None
        if self.redis_client is None:
            if time.monotonic() < self._retry_after:
                return None
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Redis cache unavailable: {e}")
                self._retry_after = time.monotonic() + RECONNECT_COOLDOWN_SECONDS
                return None
        return self.redis_client

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        client = self._get_client()
        if not client:
            return None

        try:
            value = client.get(key)
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except Exception as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Set value in cache with TTL (default 1 hour)"""
        client = self._get_client()
        if not client:
            return False

        try:
            client.setex(key, ttl, json.dumps(value))
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching pattern (e.g., 'availability:org_1:*')"""
        client = self._get_client()
        if not client:
            return 0

        try:
            keys = list(client.scan_iter(match=pattern))
            if keys:
                deleted = client.delete(*keys)
                logger.debug(f"✅ Cache DELETE pattern: {pattern} ({deleted} keys)")
                return deleted
            return 0
        except Exception as e:
            logger.error(f"❌ Cache delete pattern error for {pattern}: {e}")
            return 0

    def status(self) -> dict:
        """Connection status for the health check"""
        if not self.enabled:
            return {"available": False, "enabled": False}
        client = self._get_client()
        if not client:
            return {"available": False, "enabled": True}
        try:
            client.ping()
            return {"available": True, "enabled": True}
        except Exception as e:
            logger.error(f"❌ Redis ping failed: {e}")
            return {"available": False, "enabled": True, "error": str(e)}


# Global cache instance
cache = Cache()


def build_availability_key(
    organization_id: str, service_id: str, year: int, month: int, settings_hash: str
) -> str:
    return f"availability:{organization_id}:{service_id}:{year}-{month:02d}:{settings_hash}"


def invalidate_availability_cache(organization_id: str) -> int:
    """Drop cached slots after employee data or assignments change"""
    return cache.delete_pattern(f"availability:{organization_id}:*")
