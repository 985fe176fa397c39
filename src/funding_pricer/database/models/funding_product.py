"""
FundingProduct model - funding configuration for one catalog product.
"""

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, Index

from funding_pricer.utils.timeutils import ensure_utc, utcnow
from .base import Base, JSONType


def _number(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


class FundingProduct(Base):
    """
    Funding product configuration.

    price_steps is stored as ``[{"target": 100, "price": 9000}, ...]``,
    sorted ascending by target when written through FundingProductService.
    current_sales holds the last raw (not display-adjusted) sales count.
    """

    __tablename__ = "funding_products"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    mall_id = Column(String(100), nullable=False, index=True)
    product_no = Column(String(50), nullable=False)
    product_name = Column(String(500), default="")

    enabled = Column(Boolean, default=True, nullable=False)
    initial_price = Column(Numeric(14, 2), nullable=False)
    price_steps = Column(JSONType, default=list, nullable=False)
    display_multiplier = Column(Numeric(10, 4), default=Decimal("1.0"), nullable=False)
    include_cancellations = Column(Boolean, default=False, nullable=False)
    manual_sales_override = Column(Integer, nullable=True)

    current_sales = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_funding_mall_product", "mall_id", "product_no", unique=True),
        Index("idx_funding_mall_created", "mall_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<FundingProduct(id={self.id}, mall='{self.mall_id}', "
            f"product={self.product_no}, enabled={self.enabled})>"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        created_at = ensure_utc(self.created_at)
        updated_at = ensure_utc(self.updated_at)
        return {
            "id": self.id,
            "mall_id": self.mall_id,
            "product_no": self.product_no,
            "product_name": self.product_name,
            "enabled": self.enabled,
            "initial_price": _number(self.initial_price),
            "price_steps": list(self.price_steps or []),
            "display_multiplier": _number(self.display_multiplier),
            "include_cancellations": self.include_cancellations,
            "manual_sales_override": self.manual_sales_override,
            "current_sales": self.current_sales,
            "created_at": created_at.isoformat() if created_at else None,
            "updated_at": updated_at.isoformat() if updated_at else None,
        }
