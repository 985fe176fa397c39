"""
Shop model - the integration record of one Cafe24 storefront.
"""

from sqlalchemy import Column, String, Boolean, DateTime, Text

from funding_pricer.utils.timeutils import ensure_utc, utcnow
from .base import Base, JSONType


class Shop(Base):
    """
    OAuth integration record for a storefront (tenant).

    Created by the first successful authorization-code exchange, mutated only
    by token refresh or re-authorization. Disabling is a flag flip; rows are
    never deleted automatically.
    """

    __tablename__ = "shops"

    mall_id = Column(String(100), primary_key=True)

    # Tokens
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    refresh_expires_at = Column(DateTime(timezone=True), nullable=True)
    issued_at = Column(DateTime(timezone=True), nullable=True)
    scopes = Column(JSONType, default=list)

    # Cafe24 account
    user_id = Column(String(100), nullable=True)
    shop_no = Column(String(20), default="1", nullable=False)

    # Store details from admin/store
    shop_name = Column(String(255), nullable=True)
    primary_domain = Column(String(255), nullable=True)
    base_domain = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    country_code = Column(String(10), nullable=True)

    enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Shop(mall_id='{self.mall_id}', enabled={self.enabled})>"

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)

    @property
    def expires_at_utc(self):
        return ensure_utc(self.expires_at)

    def to_summary(self) -> dict:
        """Token-free snapshot, safe to cache and to return from the API."""
        return {
            "mall_id": self.mall_id,
            "enabled": self.enabled,
            "has_tokens": self.has_tokens,
            "shop_no": self.shop_no,
            "shop_name": self.shop_name,
            "primary_domain": self.primary_domain,
            "scopes": list(self.scopes or []),
        }
