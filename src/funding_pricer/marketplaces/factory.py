"""
Factory for creating catalog clients from a tenant's access token.
"""

from typing import Callable, Optional

from funding_pricer.marketplaces.base import CatalogClient, CatalogCredentials
from funding_pricer.marketplaces.cafe24_client import Cafe24APIClient
from funding_pricer.utils.config import Settings
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

CatalogClientFactory = Callable[[str, str, str], CatalogClient]


def create_catalog_client(
    mall_id: str,
    access_token: str,
    shop_no: str = "1",
    settings: Optional[Settings] = None,
) -> CatalogClient:
    """
    Create the catalog client for a tenant.

    Args:
        mall_id: Tenant identifier
        access_token: Valid access token for the tenant
        shop_no: Cafe24 shop number (multi-shop malls)
        settings: Application settings (default from environment)

    Returns:
        CatalogClient implementation
    """
    credentials = CatalogCredentials(
        mall_id=mall_id,
        access_token=access_token,
        shop_no=shop_no or "1",
    )
    logger.debug(f"Creating Cafe24 client for mall {mall_id}")
    return Cafe24APIClient(credentials, settings=settings)
