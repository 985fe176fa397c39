"""
API route modules.
"""

from . import funding_products, health, launch, oauth

__all__ = ["funding_products", "health", "launch", "oauth"]
