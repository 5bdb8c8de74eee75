"""Redis connection and the provider read-model cache."""

import json
from typing import Any, cast

import redis
import structlog

from app.config import settings

logger = structlog.get_logger()

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Shared Redis client, created on first use."""
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=settings.redis_socket_timeout,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """True when Redis answers a PING."""
    try:
        return bool(get_redis_client().ping())
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """
    JSON cache for directory reads, namespaced by ``CACHE_KEY_PREFIX``.

    Slot state is never cached; the ledger table is the only authority on
    what is booked. Every operation degrades to a miss when Redis fails,
    so a cache outage slows reads down but never fails a request.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str | None = None):
        self.redis = redis_client
        self.prefix = settings.cache_key_prefix if prefix is None else prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def _unavailable(self, operation: str, key: str, error: Exception) -> None:
        logger.warning("cache_unavailable", operation=operation, key=key, error=str(error))

    def get_json(self, key: str) -> Any | None:
        """Cached value for ``key``, or None on a miss."""
        try:
            value = cast(str | None, self.redis.get(self._key(key)))
        except (redis.RedisError, OSError) as e:
            self._unavailable("get", key, e)
            return None
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError:
            # Unreadable entry; treat as a miss and let the next write replace it
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """
        Store ``value`` as JSON.

        Decimals, UUIDs and datetimes are written as strings.

        Args:
            key: Cache key without prefix
            value: JSON-compatible value
            ttl: Time to live in seconds; no expiry when omitted

        Returns:
            True if the value was written
        """
        payload = json.dumps(value, default=str)
        try:
            if ttl:
                self.redis.setex(self._key(key), ttl, payload)
            else:
                self.redis.set(self._key(key), payload)
        except (redis.RedisError, OSError) as e:
            self._unavailable("set", key, e)
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            self.redis.delete(self._key(key))
        except (redis.RedisError, OSError) as e:
            self._unavailable("delete", key, e)
            return False
        return True

    def delete_pattern(self, pattern: str) -> int:
        """
        Drop every key matching a glob pattern, e.g. ``provider:list:*``.

        Uses SCAN so large keyspaces are not blocked.

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self.redis.scan_iter(match=self._key(pattern)))
            if not keys:
                return 0
            return cast(int, self.redis.delete(*keys))
        except (redis.RedisError, OSError) as e:
            self._unavailable("delete_pattern", pattern, e)
            return 0
