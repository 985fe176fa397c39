"""
Cafe24 Admin API client.

Provides authenticated access to the Admin API endpoints the funding feature
needs:
- GET  admin/products/{product_no}   product lookup
- PUT  admin/products/{product_no}   selling price update
- GET  admin/orders                  orders for sales counting
- GET  admin/store                   store metadata after authorization

Only idempotent GET calls are retried on 5xx; a price update is sent once.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from funding_pricer.marketplaces.base import (
    CatalogClient,
    CatalogCredentials,
    validate_mall_id,
)
from funding_pricer.utils.config import Settings, get_config
from funding_pricer.utils.exceptions import TransientUpstreamError, handle_api_error
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

# Paid, preparing, shipping, delivered. Everything else is a cancellation,
# exchange or return.
ACTIVE_ORDER_STATUSES = ("N1", "N2", "N3", "N4")

ORDERS_PAGE_LIMIT = 1000


class Cafe24APIClient(CatalogClient):
    """
    Cafe24 Admin API v2 client for one tenant.

    The access token must already be valid; use
    ``TokenLifecycleManager.get_valid_access_token`` to obtain it.
    """

    def __init__(self, credentials: CatalogCredentials,
                 settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize Cafe24 Admin API client.

        Args:
            credentials: Tenant mall id and access token
            settings: Application settings (default from environment)
            session: HTTP session (injected by tests)
        """
        super().__init__(credentials)
        validate_mall_id(credentials.mall_id)

        self.settings = settings or get_config()
        self.base_url = (
            f"https://{credentials.mall_id}.{self.settings.cafe24_base_domain}/api/v2/"
        )
        self.timeout = self.settings.http_timeout_seconds

        if session is None:
            session = requests.Session()

            retry_strategy = Retry(
                total=2,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            )

            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)

        self.session = session
        self.session.headers.update({
            "Authorization": f"Bearer {credentials.access_token}",
            "Content-Type": "application/json",
            "X-Cafe24-Api-Version": self.settings.cafe24_api_version,
        })

        logger.debug(f"Initialized Cafe24 API client for mall {credentials.mall_id}")

    @property
    def platform_name(self) -> str:
        return "cafe24"

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Make HTTP request with error handling.

        Args:
            method: HTTP method
            endpoint: Path relative to ``/api/v2/``
            **kwargs: Additional request parameters

        Returns:
            Parsed JSON body

        Raises:
            APIError: Subclass chosen by handle_api_error, or
                TransientUpstreamError on network failures
        """
        url = self.base_url + endpoint

        try:
            kwargs.setdefault('timeout', self.timeout)

            logger.debug(f"Making {method} request to {url}")

            response = self.session.request(method, url, **kwargs)

            if not response.ok:
                logger.error(
                    f"Cafe24 API error for mall {self.mall_id}: "
                    f"{method} {endpoint} -> {response.status_code}"
                )
                handle_api_error(response, endpoint)

            return response.json()

        except requests.exceptions.Timeout:
            raise TransientUpstreamError(f"Request timeout after {self.timeout}s", endpoint=endpoint)
        except requests.exceptions.ConnectionError:
            raise TransientUpstreamError(f"Connection failed to {url}", endpoint=endpoint)
        except requests.exceptions.RequestException as e:
            raise TransientUpstreamError(f"Request failed: {e}", endpoint=endpoint)
        except ValueError as e:
            raise TransientUpstreamError(f"Invalid JSON from Cafe24: {e}", endpoint=endpoint)

    def get_product(self, product_no: str) -> Dict[str, Any]:
        data = self._make_request("GET", f"admin/products/{product_no}")
        product = data.get("product") or {}
        logger.info(
            f"Fetched product {product_no} for mall {self.mall_id}: "
            f"{product.get('product_name')}"
        )
        return product

    def update_product_price(self, product_no: str, price: Union[Decimal, int]) -> Dict[str, Any]:
        body = {"request": {"product": {"price": str(price)}}}
        data = self._make_request("PUT", f"admin/products/{product_no}", json=body)
        logger.info(f"Updated price of product {product_no} for mall {self.mall_id} to {price}")
        return data.get("product") or {}

    def get_orders(
        self,
        product_no: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        include_cancellations: bool = False,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"embed": "items", "limit": ORDERS_PAGE_LIMIT}
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        if product_no:
            params["product_no"] = product_no
        if not include_cancellations:
            # requests repeats the key: status=N1&status=N2...
            params["status"] = list(ACTIVE_ORDER_STATUSES)

        data = self._make_request("GET", "admin/orders", params=params)
        orders = data.get("orders") or []
        logger.debug(f"Fetched {len(orders)} orders for mall {self.mall_id}")
        return orders

    def get_store(self) -> Dict[str, Any]:
        data = self._make_request(
            "GET", "admin/store", params={"shop_no": self.credentials.shop_no}
        )
        return data.get("store") or {}
