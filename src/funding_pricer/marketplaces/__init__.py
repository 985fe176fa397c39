"""
Catalog platform integrations.
"""

from funding_pricer.marketplaces.base import CatalogClient, CatalogCredentials, validate_mall_id
from funding_pricer.marketplaces.cafe24_client import Cafe24APIClient
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient, TokenGrant
from funding_pricer.marketplaces.factory import create_catalog_client

__all__ = [
    "CatalogClient",
    "CatalogCredentials",
    "validate_mall_id",
    "Cafe24APIClient",
    "Cafe24OAuthClient",
    "TokenGrant",
    "create_catalog_client",
]
