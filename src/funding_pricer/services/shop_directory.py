"""
Tenant lookup with an optional cache in front of the ``shops`` table.

Only token-free summaries are cached. Token reads always hit the database so
that a refresh performed by another request is visible immediately.
"""

from typing import Any, Dict, Optional

from funding_pricer.cache.base import CacheBackend
from funding_pricer.database.models import Shop
from funding_pricer.database.operations import ShopRepository
from funding_pricer.marketplaces.base import CatalogClient
from funding_pricer.utils.exceptions import APIError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

CACHE_NAMESPACE = "shop"
DEFAULT_TTL_SECONDS = 600


class ShopDirectory:
    """Read access to tenant integration records."""

    def __init__(
        self,
        repository: ShopRepository,
        cache: Optional[CacheBackend] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.repository = repository
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    def get(self, mall_id: str) -> Optional[Shop]:
        """Authoritative record, including tokens."""
        return self.repository.get(mall_id)

    def get_summary(self, mall_id: str) -> Optional[Dict[str, Any]]:
        """
        Token-free view of a tenant, served from cache when possible.

        Returns:
            ``Shop.to_summary()`` dict, or None if the tenant is unknown
        """
        if self.cache is not None:
            cached = self.cache.get(CACHE_NAMESPACE, mall_id)
            if cached is not None:
                return cached

        shop = self.repository.get(mall_id)
        if shop is None:
            return None

        summary = shop.to_summary()
        if self.cache is not None:
            self.cache.put(CACHE_NAMESPACE, mall_id, summary, ttl=self.ttl_seconds)
        return summary

    def needs_authorization(self, mall_id: str) -> bool:
        """True if the tenant has never completed OAuth, lost its tokens or is disabled."""
        summary = self.get_summary(mall_id)
        return summary is None or not summary.get("has_tokens") or not summary.get("enabled")

    def capture_store_info(self, mall_id: str, catalog: CatalogClient) -> bool:
        """
        Copy store metadata (name, domains, country) from the catalog.

        Best effort: upstream failures are logged and reported as False.

        Raises:
            DatabaseError: The metadata could not be stored
        """
        try:
            store = catalog.get_store()
        except APIError as e:
            logger.warning(f"Could not fetch store info for mall {mall_id}, continuing: {e}")
            return False

        self.repository.update_store_info(mall_id, store)
        self.invalidate(mall_id)
        logger.info(f"Captured store info for mall {mall_id}: {store.get('shop_name')}")
        return True

    def invalidate(self, mall_id: str) -> None:
        if self.cache is None:
            return
        self.cache.invalidate(CACHE_NAMESPACE, mall_id)
        logger.debug(f"Invalidated shop cache for mall {mall_id}")
