"""
OAuth token lifecycle for Cafe24 tenants.

States of a tenant integration:

    Unauthorized --exchange--> Authorized --near expiry--> Refreshing
    Refreshing --success--> Authorized
    Refreshing --failure--> Unauthorized (record left as is; operator re-authorizes)

This module is the only writer of tokens in the ``shops`` table. Access and
refresh tokens are always written together. Refreshes for one tenant are
serialized by a per-mall lock so concurrent requests inside this process
trigger a single refresh grant; the others reuse its result.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from funding_pricer.database.models import Shop
from funding_pricer.database.operations import ShopRepository
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient
from funding_pricer.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.exceptions import APIError
from funding_pricer.utils.logger import get_logger, log_event
from funding_pricer.utils.timeutils import utcnow

logger = get_logger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_ACCESS_TOKEN_LIFETIME = timedelta(hours=2)

_refresh_locks: Dict[str, threading.Lock] = {}
_refresh_locks_guard = threading.Lock()


def _lock_for(mall_id: str) -> threading.Lock:
    with _refresh_locks_guard:
        lock = _refresh_locks.get(mall_id)
        if lock is None:
            lock = threading.Lock()
            _refresh_locks[mall_id] = lock
        return lock


class TokenLifecycleManager:
    """
    Authorization-code exchange, refresh-token rotation and valid-token lookup.

    Upstream failures during refresh are logged and reported as None; database
    failures always propagate as DatabaseError.
    """

    def __init__(
        self,
        repository: ShopRepository,
        oauth_client: Cafe24OAuthClient,
        directory: Optional[ShopDirectory] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[PrometheusMetrics] = None,
    ):
        """
        Initialize token manager.

        Args:
            repository: Access to the ``shops`` table
            oauth_client: Cafe24 token endpoint client
            directory: Tenant directory whose cache is invalidated on writes
            clock: Returns the current aware UTC time
            metrics: Metrics collector (default global instance)
        """
        self.repository = repository
        self.oauth_client = oauth_client
        self.directory = directory
        self.clock = clock
        self.metrics = metrics or get_metrics()

    def exchange_authorization_code(self, mall_id: str, code: str) -> Shop:
        """
        Trade an authorization code for tokens and store the integration.

        Returns:
            The created or updated Shop record

        Raises:
            TokenExchangeError: Cafe24 rejected the code
            TransientUpstreamError: Network failure or 5xx
            DatabaseError: The record could not be stored
        """
        grant = self.oauth_client.exchange_code(mall_id, code)

        if grant.mall_id and grant.mall_id != mall_id:
            logger.warning(
                f"Token response mall_id {grant.mall_id} differs from state mall_id {mall_id}; "
                f"keeping {mall_id}"
            )

        values = {
            "access_token": grant.access_token,
            "refresh_token": grant.refresh_token,
            "expires_at": grant.expires_at or self.clock() + DEFAULT_ACCESS_TOKEN_LIFETIME,
            "refresh_expires_at": grant.refresh_expires_at,
            "issued_at": grant.issued_at or self.clock(),
            "scopes": grant.scopes,
            "user_id": grant.user_id,
            "shop_no": grant.shop_no or "1",
            "enabled": True,
        }
        shop = self.repository.upsert(mall_id, values)
        self._invalidate(mall_id)

        log_event(
            logger, logging.INFO, "oauth.authorized",
            mall_id=mall_id,
            user_id=grant.user_id,
            scopes=len(grant.scopes),
        )
        return shop

    def get_valid_access_token(self, mall_id: str) -> Optional[str]:
        """
        Return an access token that is good for at least five more minutes.

        Refreshes first when the stored token is within the buffer or has no
        recorded expiry.

        Returns:
            Access token, or None if the tenant is unknown, disabled, has no
            tokens or could not be refreshed
        """
        shop = self.repository.get(mall_id)
        if not self._is_usable(shop, mall_id):
            return None

        if not self._needs_refresh(shop):
            return shop.access_token

        logger.info(f"Access token for mall {mall_id} expires soon, refreshing")
        with _lock_for(mall_id):
            shop = self.repository.get(mall_id)
            if not self._is_usable(shop, mall_id):
                return None
            if not self._needs_refresh(shop):
                logger.debug(f"Access token for mall {mall_id} was refreshed by another request")
                return shop.access_token
            return self._refresh_locked(shop)

    def refresh(self, mall_id: str) -> Optional[str]:
        """
        Run the refresh-token grant now.

        Returns:
            New access token, or None on upstream failure (record untouched)

        Raises:
            DatabaseError: The new tokens could not be stored
        """
        with _lock_for(mall_id):
            shop = self.repository.get(mall_id)
            if not self._is_usable(shop, mall_id):
                return None
            return self._refresh_locked(shop)

    def _refresh_locked(self, shop: Shop) -> Optional[str]:
        mall_id = shop.mall_id

        if not shop.refresh_token:
            logger.error(f"Mall {mall_id} has no refresh token, re-authorization required")
            self.metrics.track_token_refresh(False)
            return None

        try:
            grant = self.oauth_client.refresh(mall_id, shop.refresh_token)
        except APIError as e:
            log_event(
                logger, logging.ERROR, "oauth.refresh_failed",
                mall_id=mall_id,
                error_type=type(e).__name__,
                status_code=e.status_code,
                response=e.response_data,
                message=e.message,
            )
            self.metrics.track_token_refresh(False)
            return None

        expires_at = grant.expires_at or self.clock() + DEFAULT_ACCESS_TOKEN_LIFETIME
        self.repository.update_tokens(
            mall_id,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or shop.refresh_token,
            expires_at=expires_at,
            refresh_expires_at=grant.refresh_expires_at,
        )
        self._invalidate(mall_id)
        self.metrics.track_token_refresh(True)

        log_event(
            logger, logging.INFO, "oauth.refreshed",
            mall_id=mall_id,
            expires_at=expires_at.isoformat(),
            rotated=bool(grant.refresh_token),
        )
        return grant.access_token

    def _is_usable(self, shop: Optional[Shop], mall_id: str) -> bool:
        if shop is None:
            logger.warning(f"No integration record for mall {mall_id}")
            return False
        if not shop.enabled:
            logger.warning(f"Integration for mall {mall_id} is disabled")
            return False
        if not shop.access_token:
            logger.warning(f"Mall {mall_id} has no access token")
            return False
        return True

    def _needs_refresh(self, shop: Shop) -> bool:
        expires_at = shop.expires_at_utc
        if expires_at is None:
            return True
        return expires_at - self.clock() <= REFRESH_BUFFER

    def _invalidate(self, mall_id: str) -> None:
        if self.directory is not None:
            self.directory.invalidate(mall_id)
