"""
Cache abstraction injected into lookup paths.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheBackend(ABC):
    """
    Minimal get/put/invalidate cache contract.

    Values must be JSON-serializable. Implementations degrade to a miss on
    backend failure instead of raising.
    """

    @abstractmethod
    def get(self, namespace: str, key: str) -> Optional[Any]:
        """Return the cached value or None on miss."""

    @abstractmethod
    def put(self, namespace: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a value with a TTL in seconds."""

    @abstractmethod
    def invalidate(self, namespace: str, key: str) -> bool:
        """Drop a single entry."""

    @abstractmethod
    def invalidate_namespace(self, namespace: str) -> int:
        """Drop every entry of a namespace, returning the number removed."""
