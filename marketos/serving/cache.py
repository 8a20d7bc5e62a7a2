"""
Redis Cache Module

Namespaced JSON cache for analytics responses with:
- Connection pooling
- TTL management
- Namespace invalidation after syncs

When Redis was never initialized (tests, scheduler workers) or becomes
unreachable, every operation degrades to a cache miss.
"""

import json
from typing import Any, Awaitable, Callable, Optional, Union
from datetime import timedelta

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from marketos.config import get_settings
from marketos.config.settings import RedisSettings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis(settings: Optional[RedisSettings] = None) -> Redis:
    """Initialize Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = settings or get_settings().redis
    pool = ConnectionPool.from_url(
        settings.get_url(),
        max_connections=settings.max_connections,
        socket_timeout=settings.socket_timeout,
        decode_responses=settings.decode_responses,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except Exception as e:
        logger.error("Redis connection failed", error=str(e))
        await pool.disconnect()
        raise

    _redis_pool, _redis_client = pool, client
    logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[Redis]:
    """Redis client, or None before init_redis()"""
    return _redis_client


class CacheManager:
    """
    Cache manager with namespace support.

    Example:
        cache = CacheManager("analytics")
        await cache.set("kpi:u1:2024-01-01", payload, ttl=600)
        payload = await cache.get("kpi:u1:2024-01-01")
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        client = get_redis()
        if client is None:
            return None
        try:
            value = await client.get(self._key(key))
        except RedisError as e:
            logger.warning("Cache read failed", key=key, error=str(e))
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, ttl: Optional[Union[int, timedelta]] = None) -> bool:
        client = get_redis()
        if client is None:
            return False
        try:
            serialized = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize value for cache", key=key, error=str(e))
            return False

        ttl = ttl or self.default_ttl
        if isinstance(ttl, timedelta):
            ttl = int(ttl.total_seconds())
        try:
            await client.setex(self._key(key), ttl, serialized)
        except RedisError as e:
            logger.warning("Cache write failed", key=key, error=str(e))
            return False
        return True

    async def invalidate_all(self) -> int:
        """Invalidate all keys in namespace"""
        client = get_redis()
        if client is None:
            return 0
        try:
            keys = [key async for key in client.scan_iter(match=f"{self.namespace}:*")]
            if not keys:
                return 0
            return await client.delete(*keys)
        except RedisError as e:
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=str(e))
            return 0

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key
            factory: Async function returning a JSON-serializable value
            ttl: Time-to-live

        Returns:
            Cached or computed value
        """
        value = await self.get(key)
        if value is not None:
            return value

        value = await factory()
        await self.set(key, value, ttl)
        return value


analytics_cache = CacheManager("analytics", default_ttl=get_settings().redis.analytics_ttl_seconds)
