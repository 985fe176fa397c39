"""
Abstract base class for catalog API clients.

The pricing engine and the sales aggregator only talk to this interface, so
tests can hand them a fake catalog and other platforms could be added later.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from funding_pricer.utils.exceptions import ValidationError

# Cafe24 mall ids become part of a hostname
_MALL_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]{1,49}$")


def validate_mall_id(mall_id: Optional[str]) -> str:
    """
    Check that ``mall_id`` is safe to use as a subdomain.

    Raises:
        ValidationError: If the id is missing or contains unexpected characters
    """
    if not mall_id or not _MALL_ID_PATTERN.match(mall_id):
        raise ValidationError(
            "Invalid mall_id",
            field="mall_id",
            value=mall_id,
            code="INVALID_MALL_ID",
        )
    return mall_id


@dataclass
class CatalogCredentials:
    """Per-tenant credentials for a catalog API call."""
    mall_id: str
    access_token: str
    shop_no: str = "1"


class CatalogClient(ABC):
    """
    Abstract catalog client interface.

    All methods are blocking and raise ``APIError`` subclasses on failure.
    """

    def __init__(self, credentials: CatalogCredentials):
        """
        Initialize catalog client with credentials.

        Args:
            credentials: Tenant credentials
        """
        self.credentials = credentials

    @property
    def mall_id(self) -> str:
        return self.credentials.mall_id

    @abstractmethod
    def get_product(self, product_no: str) -> Dict[str, Any]:
        """
        Fetch one product.

        Returns:
            Product payload (at least ``product_no``, ``product_name``, ``price``)
        """
        pass

    @abstractmethod
    def update_product_price(self, product_no: str, price: Union[Decimal, int]) -> Dict[str, Any]:
        """
        Set the selling price of a product.

        Returns:
            Updated product payload
        """
        pass

    @abstractmethod
    def get_orders(
        self,
        product_no: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        include_cancellations: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        List orders, optionally restricted to a product and a date range.

        Args:
            product_no: Product number filter
            start_date: Start date (YYYY-MM-DD)
            end_date: End date (YYYY-MM-DD)
            include_cancellations: When False only paid, preparing, shipping
                and delivered orders are returned

        Returns:
            List of order payloads with embedded items
        """
        pass

    @abstractmethod
    def get_store(self) -> Dict[str, Any]:
        """Fetch store metadata (name, domains, country)."""
        pass

    @property
    @abstractmethod
    def platform_name(self) -> str:
        """Get platform name."""
        pass
