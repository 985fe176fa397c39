"""
Sales counting from Cafe24 orders.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from funding_pricer.marketplaces.base import CatalogClient
from funding_pricer.utils.exceptions import APIError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


def _parse_quantity(value: Any, order_id: Optional[str], product_no: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        logger.warning(
            f"Unparseable quantity {value!r} for product {product_no} "
            f"in order {order_id}, counting as 0"
        )
        return 0


def sum_product_quantity(orders: Iterable[Dict[str, Any]], product_no: str) -> int:
    """Total ``quantity`` over all order items whose product_no matches."""
    total = 0
    for order in orders:
        for item in order.get("items") or []:
            if str(item.get("product_no")) == product_no:
                total += _parse_quantity(item.get("quantity"), order.get("order_id"), product_no)
    return total


class SalesAggregator:
    """Computes the raw sales count of one product for one tenant."""

    def __init__(self, catalog: CatalogClient):
        self.catalog = catalog

    def get_product_sales_count(
        self,
        product_no: str,
        include_cancellations: bool = False,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> int:
        """
        Sum ordered quantities of ``product_no``.

        Args:
            product_no: Catalog product number
            include_cancellations: Count cancelled, exchanged and returned
                orders too
            start_date: Optional lower date bound (YYYY-MM-DD)
            end_date: Optional upper date bound (YYYY-MM-DD)

        Returns:
            Total quantity; 0 if the orders could not be retrieved
        """
        product_no = str(product_no)
        try:
            orders = self.catalog.get_orders(
                product_no=product_no,
                start_date=start_date,
                end_date=end_date,
                include_cancellations=include_cancellations,
            )
        except APIError as e:
            logger.error(
                f"Failed to fetch orders for product {product_no} "
                f"of mall {self.catalog.mall_id}: {e}"
            )
            return 0

        total = sum_product_quantity(orders, product_no)
        logger.info(
            f"Sales count for product {product_no} of mall {self.catalog.mall_id}: "
            f"{total} from {len(orders)} orders (include_cancellations={include_cancellations})"
        )
        return total
