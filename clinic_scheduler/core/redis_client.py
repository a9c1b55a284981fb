"""Redis client configuration and slot cache helpers."""

import json
from datetime import date
from typing import Any, cast

import redis

from clinic_scheduler.config import settings

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """
    Check if Redis connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    if not settings.cache_enabled:
        return True
    try:
        client = get_redis_client()
        client.ping()
        return True
    except redis.RedisError:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


def slot_version_key(doctor_id: int, clinic_id: int) -> str:
    """Counter bumped on every write that changes a doctor's slots at a clinic."""
    return f"slot-version:{doctor_id}:{clinic_id}"


def slot_cache_key(doctor_id: int, clinic_id: int, day: date, version: int = 0) -> str:
    """Cache key for one day of generated slots under a slot version."""
    return f"slots:{doctor_id}:{clinic_id}:v{version}:{day.isoformat()}"


def slot_cache_pattern(doctor_id: int, clinic_id: int) -> str:
    """Pattern matching every cached slot day of a doctor at a clinic."""
    return f"slots:{doctor_id}:{clinic_id}:*"


class CacheManager:
    """
    Redis-based cache manager.

    Every operation fails open: a Redis outage degrades to a cache miss
    instead of failing the request.
    """

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def get_json(self, key: str) -> Any | None:
        """
        Get JSON value from cache and deserialize.

        Args:
            key: Cache key

        Returns:
            Deserialized object or None
        """
        try:
            value = cast(str | None, self.redis.get(key))
            if value:
                return json.loads(value)
            return None
        except (redis.RedisError, ValueError):
            return None

    def set_json(
        self,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Serialize and set JSON value in cache.

        Args:
            key: Cache key
            value: Value to serialize and cache
            ttl: Time to live in seconds

        Returns:
            True if successful, False otherwise
        """
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                self.redis.setex(key, ttl, json_value)
            else:
                self.redis.set(key, json_value)
            return True
        except (redis.RedisError, TypeError):
            return False

    def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Redis key pattern (e.g., 'slots:1:2:*')

        Returns:
            Number of keys deleted
        """
        try:
            keys = cast(list[str], self.redis.keys(pattern))
            if keys:
                return cast(int, self.redis.delete(*keys))
            return 0
        except redis.RedisError:
            return 0

    def slot_version(self, doctor_id: int, clinic_id: int) -> int | None:
        """
        Current slot version of a doctor at a clinic.

        Returns:
            The version (0 before the first write), or None if Redis is unreachable
        """
        try:
            value = self.redis.get(slot_version_key(doctor_id, clinic_id))
        except redis.RedisError:
            return None
        return int(cast(str, value)) if value is not None else 0

    def invalidate_slots(self, doctor_id: int, clinic_id: int) -> int:
        """
        Drop cached slot listings after a booking or schedule write.

        The version bump comes first: a listing computed before the write is
        stored under the old version and never read again.
        """
        try:
            self.redis.incr(slot_version_key(doctor_id, clinic_id))
        except redis.RedisError:
            pass
        return self.delete_pattern(slot_cache_pattern(doctor_id, clinic_id))
