"""
Sentry integration for error tracking.
"""

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

# Query parameters that must never reach Sentry
_SENSITIVE_KEYS = ("hmac", "code", "state", "access_token", "refresh_token")


def setup_sentry(
    dsn: Optional[str],
    environment: str = "development",
    release: Optional[str] = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """
    Initialize Sentry SDK when a DSN is configured.

    Returns:
        True if Sentry was initialized
    """
    if not dsn:
        logger.warning("Sentry DSN not configured, skipping Sentry initialization")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=traces_sample_rate,
        before_send=before_send_filter,
        send_default_pii=False,
    )

    logger.info(f"Sentry initialized: environment={environment}, release={release}")
    return True


def before_send_filter(event, hint):
    """Strip OAuth and launch secrets from request query strings."""
    request = event.get("request") or {}
    query = request.get("query_string")
    if isinstance(query, str) and query:
        pairs = []
        for pair in query.split("&"):
            name = pair.split("=", 1)[0]
            pairs.append(f"{name}=[Filtered]" if name in _SENSITIVE_KEYS else pair)
        request["query_string"] = "&".join(pairs)
    return event
