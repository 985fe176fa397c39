"""
OAuthState model - single-use CSRF state for the authorization redirect.
"""

from sqlalchemy import Column, String, DateTime, Index

from funding_pricer.utils.timeutils import utcnow
from .base import Base


class OAuthState(Base):
    """Opaque ``<mall_id>:<random>`` value, valid for ten minutes, consumed once."""

    __tablename__ = "oauth_states"

    state = Column(String(255), primary_key=True)
    mall_id = Column(String(100), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_oauth_states_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<OAuthState(mall_id='{self.mall_id}', expires_at={self.expires_at})>"
