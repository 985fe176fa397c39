"""
Pydantic schemas for API request validation.
"""

from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class PriceStep(BaseModel):
    """One rung of the price ladder."""
    target: int = Field(..., ge=0, description="Display sales needed to unlock this price")
    price: Decimal = Field(..., gt=0)


class FundingProductCreate(BaseModel):
    """Funding product registration."""
    mall_id: str = Field(..., min_length=1)
    product_no: Union[str, int]
    initial_price: Decimal = Field(..., gt=0)
    price_steps: List[PriceStep] = Field(default_factory=list)
    display_multiplier: Decimal = Field(Decimal("1.0"), gt=0)
    include_cancellations: bool = False


class FundingProductUpdate(BaseModel):
    """Partial update; only fields sent by the client are applied."""
    enabled: Optional[bool] = None
    initial_price: Optional[Decimal] = Field(None, gt=0)
    price_steps: Optional[List[PriceStep]] = None
    display_multiplier: Optional[Decimal] = Field(None, gt=0)
    include_cancellations: Optional[bool] = None
    manual_sales_override: Optional[int] = Field(None, ge=0)
