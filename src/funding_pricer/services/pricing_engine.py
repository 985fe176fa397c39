"""
Tier pricing for funding products.

Given a raw sales count the engine:
1. takes the manual override instead, when one is set
2. scales it by the display multiplier and floors it (exact decimals)
3. picks the highest step whose target the display count has reached,
   falling back to the initial price
4. pushes that price to the catalog when it differs from the initial price
5. stores the raw count on the configuration

A disabled configuration is left alone: no catalog call and no write.
"""

import math
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple, Union

from funding_pricer.database.models import FundingProduct
from funding_pricer.database.operations import FundingProductRepository
from funding_pricer.marketplaces.base import CatalogClient
from funding_pricer.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from funding_pricer.utils.exceptions import APIError, ValidationError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """
    Convert a stored number to Decimal without binary float artefacts.

    Raises:
        ValidationError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field, value=value)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field, value=value)
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", field=field, value=value)
    return result


def _plain(value: Decimal) -> Union[int, Decimal]:
    return int(value) if value == value.to_integral_value() else value


def compute_display_sales(effective_sales: int, multiplier: Number) -> int:
    """floor(effective_sales * multiplier), computed on decimals."""
    product = Decimal(effective_sales) * to_decimal(multiplier, "display_multiplier")
    return int(math.floor(product))


def sort_steps(steps: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Stable ascending sort by target; steps sharing a target keep their order."""
    return sorted(steps or [], key=lambda step: to_decimal(step["target"], "target"))


def select_price(
    steps: Optional[List[Dict[str, Any]]],
    display_sales: int,
    initial_price: Number,
) -> Tuple[Decimal, Optional[Dict[str, Any]]]:
    """
    Pick the price for ``display_sales``.

    Steps are sorted ascending first and scanned from the last one, so the
    highest reached target wins and, between equal targets, the later step.

    Returns:
        (price, matched step or None)
    """
    for step in reversed(sort_steps(steps)):
        if to_decimal(step["target"], "target") <= display_sales:
            return to_decimal(step["price"], "price"), step
    return to_decimal(initial_price, "initial_price"), None


@dataclass
class PricingResult:
    """Outcome of one pricing pass."""

    product_id: str
    raw_sales: int
    display_sales: int
    price: Decimal
    applied_step: Optional[Dict[str, Any]] = None
    price_updated: bool = False
    disabled: bool = False

    @classmethod
    def for_disabled(cls, config: FundingProduct, raw_sales: Optional[int] = None) -> "PricingResult":
        return cls(
            product_id=config.id,
            raw_sales=config.current_sales if raw_sales is None else raw_sales,
            display_sales=0,
            price=to_decimal(config.initial_price, "initial_price"),
            disabled=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["price"] = _plain(self.price)
        return data


class PricingEngine:
    """Applies tier pricing to one configuration using a tenant's catalog."""

    def __init__(
        self,
        catalog: CatalogClient,
        repository: FundingProductRepository,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        self.catalog = catalog
        self.repository = repository
        self.metrics = metrics or get_metrics()

    def apply(self, config: FundingProduct, raw_sales: int) -> PricingResult:
        """
        Price ``config`` for ``raw_sales`` and persist the raw count.

        Returns:
            PricingResult; ``price_updated`` is False when no update was
            needed or the catalog rejected it

        Raises:
            DatabaseError: The sales count could not be stored
        """
        if not config.enabled:
            logger.info(f"Funding product {config.id} is disabled, skipping pricing")
            return PricingResult.for_disabled(config, raw_sales)

        effective = (
            config.manual_sales_override
            if config.manual_sales_override is not None
            else raw_sales
        )
        display_sales = compute_display_sales(effective, config.display_multiplier)
        initial_price = to_decimal(config.initial_price, "initial_price")
        price, step = select_price(config.price_steps, display_sales, initial_price)

        price_updated = False
        if price != initial_price:
            price_updated = self._push_price(config, price)

        self.repository.update_sales(config, raw_sales)

        result = PricingResult(
            product_id=config.id,
            raw_sales=raw_sales,
            display_sales=display_sales,
            price=price,
            applied_step=step,
            price_updated=price_updated,
        )
        logger.info(
            f"Priced product {config.product_no} of mall {config.mall_id}: "
            f"raw={raw_sales} display={display_sales} price={price} updated={price_updated}"
        )
        return result

    def _push_price(self, config: FundingProduct, price: Decimal) -> bool:
        try:
            self.catalog.update_product_price(config.product_no, _plain(price))
        except APIError as e:
            logger.error(
                f"Price update to {price} failed for product {config.product_no} "
                f"of mall {config.mall_id}: {e}"
            )
            self.metrics.track_price_update(False)
            return False

        self.metrics.track_price_update(True)
        return True
