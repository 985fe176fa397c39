"""
SQLAlchemy database models.

Models:
- Shop: Cafe24 integration record (tokens, store details)
- OAuthState: single-use CSRF state for the OAuth redirect
- FundingProduct: funding configuration for one product
"""

from .base import Base
from .shop import Shop
from .oauth_state import OAuthState
from .funding_product import FundingProduct

__all__ = [
    "Base",
    "Shop",
    "OAuthState",
    "FundingProduct",
]
