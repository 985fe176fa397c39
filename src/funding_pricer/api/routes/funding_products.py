"""
Funding product management and sync routes.

All routes require a session; a session only sees its own mall's products.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status

from funding_pricer.api.dependencies import (
    get_current_session,
    get_funding_product_service,
    get_funding_sync_service,
    require_mall_access,
)
from funding_pricer.api.schemas import FundingProductCreate, FundingProductUpdate
from funding_pricer.services.funding_products import FundingProductService
from funding_pricer.services.funding_sync import FundingSyncService
from funding_pricer.utils.exceptions import ValidationError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
def list_funding_products(
    mall_id: Optional[str] = None,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
):
    """List the mall's funding products, newest first."""
    if not mall_id:
        raise ValidationError("mall_id parameter is required", field="mall_id", code="MISSING_MALL_ID")
    require_mall_access(mall_id, session)

    products = service.list_for_mall(mall_id)
    return {"products": [product.to_dict() for product in products]}


@router.post("", status_code=status.HTTP_201_CREATED)
def register_funding_product(
    payload: FundingProductCreate,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
):
    """Register a catalog product for funding."""
    require_mall_access(payload.mall_id, session)

    product = service.register(
        payload.mall_id,
        str(payload.product_no),
        payload.initial_price,
        price_steps=[step.model_dump() for step in payload.price_steps],
        display_multiplier=payload.display_multiplier,
        include_cancellations=payload.include_cancellations,
    )
    return {"product": product.to_dict()}


@router.get("/{product_id}")
def get_funding_product(
    product_id: str,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
):
    product = service.get(session["mall_id"], product_id)
    return {"product": product.to_dict()}


@router.put("/{product_id}")
def update_funding_product(
    product_id: str,
    payload: FundingProductUpdate,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
):
    """Update settings; fields left out of the body are unchanged."""
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("price_steps") is not None:
        changes["price_steps"] = [dict(step) for step in changes["price_steps"]]

    product = service.update(session["mall_id"], product_id, changes)
    return {"product": product.to_dict()}


@router.delete("/{product_id}")
def delete_funding_product(
    product_id: str,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
):
    service.delete(session["mall_id"], product_id)
    return {"success": True}


@router.post("/{product_id}/sync")
def sync_funding_product(
    product_id: str,
    session: Dict[str, Any] = Depends(get_current_session),
    service: FundingProductService = Depends(get_funding_product_service),
    sync_service: FundingSyncService = Depends(get_funding_sync_service),
):
    """
    Recount sales and apply the tier price.

    A failed price push is reported in ``stats.price_updated`` while the
    sales count is still stored.
    """
    product = service.get(session["mall_id"], product_id)
    result = sync_service.sync_and_price(product)

    response = {
        "success": True,
        "product": product.to_dict(),
        "stats": result.to_dict(),
    }
    if result.disabled:
        response["message"] = "Funding is disabled for this product"
    return response
