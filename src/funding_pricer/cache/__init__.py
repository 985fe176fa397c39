"""
Caching layer for Funding Pricer.
"""

from .base import CacheBackend
from .redis_cache import RedisCache, get_cache

__all__ = ["CacheBackend", "RedisCache", "get_cache"]
