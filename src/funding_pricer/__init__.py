"""
Funding Pricer

Runs funding-style pre-orders for Cafe24 storefronts: the displayed unit price
steps down automatically as the (optionally scaled) sales count crosses
configured thresholds. Handles the storefront trust boundary (signed launch
requests, CSRF-safe OAuth, token refresh) and the pricing reconciliation
against the Cafe24 Admin API.
"""

__version__ = "1.0.0"
__author__ = "Funding Pricer Team"
