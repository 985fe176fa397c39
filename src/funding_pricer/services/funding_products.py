"""
Funding product configuration management.

Validates price ladders at write time and keeps them sorted ascending by
target, so stored rows are already in scan order for the pricing engine.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from funding_pricer.auth.token_manager import TokenLifecycleManager
from funding_pricer.database.models import FundingProduct
from funding_pricer.database.operations import FundingProductRepository
from funding_pricer.marketplaces.factory import CatalogClientFactory, create_catalog_client
from funding_pricer.services.pricing_engine import sort_steps, to_decimal
from funding_pricer.utils.exceptions import APIError, NotFoundError, ValidationError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = (
    "enabled",
    "initial_price",
    "price_steps",
    "display_multiplier",
    "include_cancellations",
    "manual_sales_override",
)


def _json_number(value: Decimal):
    return int(value) if value == value.to_integral_value() else float(value)


def normalize_steps(steps: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Validate a price ladder and return it sorted ascending by target.

    Each step must have a non-negative target and a positive price.

    Raises:
        ValidationError: On a malformed step
    """
    if steps is None:
        return []
    if not isinstance(steps, list):
        raise ValidationError("price_steps must be a list", field="price_steps")

    normalized = []
    for index, step in enumerate(steps):
        if not isinstance(step, dict) or "target" not in step or "price" not in step:
            raise ValidationError(
                f"Step {index} must have target and price",
                field="price_steps",
                value=step,
            )
        target = to_decimal(step["target"], "target")
        price = to_decimal(step["price"], "price")
        if target < 0 or target != target.to_integral_value():
            raise ValidationError(
                f"Step {index} target must be a non-negative integer",
                field="price_steps",
                value=step["target"],
            )
        if price <= 0:
            raise ValidationError(
                f"Step {index} price must be positive",
                field="price_steps",
                value=step["price"],
            )
        normalized.append({"target": int(target), "price": _json_number(price)})

    return sort_steps(normalized)


def _validate_scalars(values: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(values)

    if "initial_price" in cleaned:
        initial_price = to_decimal(cleaned["initial_price"], "initial_price")
        if initial_price <= 0:
            raise ValidationError(
                "initial_price must be positive",
                field="initial_price",
                value=cleaned["initial_price"],
            )
        cleaned["initial_price"] = initial_price

    if "display_multiplier" in cleaned:
        if cleaned["display_multiplier"] is None:
            cleaned["display_multiplier"] = Decimal("1.0")
        multiplier = to_decimal(cleaned["display_multiplier"], "display_multiplier")
        if multiplier <= 0:
            raise ValidationError(
                "display_multiplier must be positive",
                field="display_multiplier",
                value=cleaned["display_multiplier"],
            )
        cleaned["display_multiplier"] = multiplier

    override = cleaned.get("manual_sales_override")
    if override is not None:
        if isinstance(override, bool) or not isinstance(override, int) or override < 0:
            raise ValidationError(
                "manual_sales_override must be a non-negative integer",
                field="manual_sales_override",
                value=override,
            )

    if "price_steps" in cleaned:
        cleaned["price_steps"] = normalize_steps(cleaned["price_steps"])

    return cleaned


class FundingProductService:
    """CRUD over funding configurations, scoped to one mall per call."""

    def __init__(
        self,
        repository: FundingProductRepository,
        token_manager: Optional[TokenLifecycleManager] = None,
        client_factory: CatalogClientFactory = create_catalog_client,
    ):
        self.repository = repository
        self.token_manager = token_manager
        self.client_factory = client_factory

    def list_for_mall(self, mall_id: str) -> List[FundingProduct]:
        return self.repository.list_for_mall(mall_id)

    def get(self, mall_id: str, product_id: str) -> FundingProduct:
        """
        Raises:
            NotFoundError: Unknown id, or the product belongs to another mall
        """
        product = self.repository.get(product_id)
        if product is None or product.mall_id != mall_id:
            raise NotFoundError("Funding product not found", {"id": product_id})
        return product

    def register(self, mall_id: str, product_no: str, initial_price: Any,
                 price_steps: Optional[List[Dict[str, Any]]] = None,
                 display_multiplier: Any = Decimal("1.0"),
                 include_cancellations: bool = False) -> FundingProduct:
        """
        Register a catalog product for funding.

        The product name is copied from the catalog when it can be fetched.

        Raises:
            ValidationError: Invalid values, or the product is already registered
            DatabaseError: The configuration could not be stored
        """
        product_no = str(product_no).strip()
        if not product_no:
            raise ValidationError("product_no is required", field="product_no")

        values = _validate_scalars({
            "initial_price": initial_price,
            "price_steps": price_steps or [],
            "display_multiplier": display_multiplier,
        })

        if self.repository.get_by_product(mall_id, product_no) is not None:
            raise ValidationError(
                "Product is already registered for funding",
                field="product_no",
                value=product_no,
                code="DUPLICATE_PRODUCT",
            )

        product = self.repository.insert({
            "mall_id": mall_id,
            "product_no": product_no,
            "product_name": self._fetch_product_name(mall_id, product_no),
            "enabled": True,
            "include_cancellations": bool(include_cancellations),
            "current_sales": 0,
            **values,
        })
        logger.info(f"Registered funding product {product.id} (mall {mall_id}, product {product_no})")
        return product

    def update(self, mall_id: str, product_id: str, changes: Dict[str, Any]) -> FundingProduct:
        """
        Apply a partial update; unknown fields are ignored.

        Raises:
            NotFoundError: Unknown id
            ValidationError: Invalid values
        """
        product = self.get(mall_id, product_id)
        # null clears the override; for every other field it means "unchanged"
        values = {
            key: value
            for key, value in changes.items()
            if key in UPDATABLE_FIELDS and (value is not None or key == "manual_sales_override")
        }
        if not values:
            return product

        product = self.repository.update(product, _validate_scalars(values))
        logger.info(f"Updated funding product {product_id}: {sorted(values)}")
        return product

    def delete(self, mall_id: str, product_id: str) -> None:
        product = self.get(mall_id, product_id)
        self.repository.delete(product)
        logger.info(f"Deleted funding product {product_id}")

    def _fetch_product_name(self, mall_id: str, product_no: str) -> str:
        if self.token_manager is None:
            return ""
        access_token = self.token_manager.get_valid_access_token(mall_id)
        if access_token is None:
            logger.warning(f"No access token for mall {mall_id}, registering without product name")
            return ""
        try:
            catalog = self.client_factory(mall_id, access_token, "1")
            return catalog.get_product(product_no).get("product_name") or ""
        except APIError as e:
            logger.warning(f"Could not fetch product {product_no} of mall {mall_id}: {e}")
            return ""
