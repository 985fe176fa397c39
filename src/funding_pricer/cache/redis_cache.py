"""
Redis caching implementation for Funding Pricer.
"""

import json
from typing import Any, Optional

import redis
from redis.connection import ConnectionPool

from funding_pricer.cache.base import CacheBackend
from funding_pricer.utils.config import get_config
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


class RedisCache(CacheBackend):
    """
    Redis cache manager with connection pooling.

    Supports:
    - Get/Put/Invalidate operations
    - TTL management
    - JSON serialization
    - Namespaced keys (``funding:{namespace}:{key}``)
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        default_ttl: int = 300,
        max_connections: int = 20,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize Redis cache.

        Args:
            redis_url: Redis connection URL (default from REDIS_URL)
            default_ttl: Default TTL in seconds
            max_connections: Maximum pool connections
            client: Pre-built client (used by tests with fakeredis)
        """
        self.default_ttl = default_ttl
        self.pool = None

        if client is not None:
            self.redis_url = None
            self.client = client
        else:
            self.redis_url = redis_url or get_config().redis_url
            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=max_connections,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

        logger.info(f"Redis cache initialized (url={self.redis_url}, ttl={default_ttl}s)")

    def _make_key(self, namespace: str, key: str) -> str:
        return f"funding:{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Optional[Any]:
        cache_key = self._make_key(namespace, key)

        try:
            value = self.client.get(cache_key)

            if value is None:
                logger.debug(f"Cache miss: {cache_key}")
                return None

            result = json.loads(value)
            logger.debug(f"Cache hit: {cache_key}")
            return result

        except json.JSONDecodeError as e:
            logger.error(f"Cache JSON decode error for {cache_key}: {e}")
            return None
        except redis.RedisError as e:
            logger.error(f"Cache get error for {cache_key}: {e}")
            return None

    def put(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        cache_key = self._make_key(namespace, key)
        ttl = ttl or self.default_ttl

        try:
            serialized = json.dumps(value)
            self.client.setex(cache_key, ttl, serialized)

            logger.debug(f"Cache set: {cache_key} (ttl={ttl}s)")
            return True

        except (TypeError, ValueError) as e:
            logger.error(f"Cache serialization error for {cache_key}: {e}")
            return False
        except redis.RedisError as e:
            logger.error(f"Cache set error for {cache_key}: {e}")
            return False

    def invalidate(self, namespace: str, key: str) -> bool:
        cache_key = self._make_key(namespace, key)

        try:
            result = self.client.delete(cache_key)
            logger.debug(f"Cache delete: {cache_key} (deleted={result})")
            return result > 0
        except redis.RedisError as e:
            logger.error(f"Cache delete error for {cache_key}: {e}")
            return False

    def invalidate_namespace(self, namespace: str) -> int:
        cache_pattern = self._make_key(namespace, "*")

        try:
            keys = list(self.client.scan_iter(match=cache_pattern))

            if not keys:
                return 0

            deleted = self.client.delete(*keys)
            logger.info(f"Cache invalidated: {cache_pattern} ({deleted} keys)")
            return deleted

        except redis.RedisError as e:
            logger.error(f"Cache invalidate error for {cache_pattern}: {e}")
            return 0

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    def close(self):
        """Close Redis connection pool."""
        try:
            self.client.close()
            if self.pool is not None:
                self.pool.disconnect()
            logger.info("Redis cache closed")
        except redis.RedisError as e:
            logger.error(f"Redis close error: {e}")


_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """
    Get or create the process-wide Redis cache.

    Returns:
        RedisCache instance
    """
    global _cache_instance

    if _cache_instance is None:
        _cache_instance = RedisCache()

    return _cache_instance
