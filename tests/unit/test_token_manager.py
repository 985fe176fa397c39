"""
Unit tests for TokenLifecycleManager
"""
import threading
import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from funding_pricer.auth.token_manager import (
    DEFAULT_ACCESS_TOKEN_LIFETIME,
    TokenLifecycleManager,
)
from funding_pricer.database.models import Shop
from funding_pricer.database.operations import ShopRepository
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient, TokenGrant
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.exceptions import (
    DatabaseError,
    ReauthorizationRequiredError,
    TokenExchangeError,
    TransientUpstreamError,
)
from funding_pricer.utils.timeutils import ensure_utc

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def oauth():
    return MagicMock(spec=Cafe24OAuthClient)


@pytest.fixture
def repository(db_session):
    return ShopRepository(db_session)


@pytest.fixture
def directory(repository, cache):
    return ShopDirectory(repository, cache)


@pytest.fixture
def manager(repository, oauth, directory, metrics):
    return TokenLifecycleManager(repository, oauth, directory, clock=lambda: NOW, metrics=metrics)


@pytest.fixture
def store_shop(repository):
    def _store(expires_in=timedelta(hours=2), **overrides):
        values = {
            "access_token": "old-access",
            "refresh_token": "old-refresh",
            "expires_at": NOW + expires_in if expires_in is not None else None,
            "scopes": ["mall.read_product"],
            "user_id": "admin",
            "shop_no": "1",
            "enabled": True,
        }
        values.update(overrides)
        return repository.upsert("testmall", values)
    return _store


def _grant(access="new-access", refresh="new-refresh", expires_at=NOW + timedelta(hours=2)):
    return TokenGrant(
        access_token=access,
        refresh_token=refresh,
        expires_at=expires_at,
        refresh_expires_at=NOW + timedelta(days=14),
        issued_at=NOW,
        scopes=["mall.read_product", "mall.write_product"],
        user_id="admin",
        mall_id="testmall",
        shop_no="1",
    )


def _counter(metrics, result):
    return metrics.registry.get_sample_value(
        "funding_pricer_token_refresh_total", {"result": result}
    ) or 0


class TestGetValidAccessToken:
    """Test the refresh decision"""

    def test_returns_stored_token_outside_buffer(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(minutes=6))

        assert manager.get_valid_access_token("testmall") == "old-access"
        oauth.refresh.assert_not_called()

    def test_refreshes_at_exactly_five_minutes(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(minutes=5))
        oauth.refresh.return_value = _grant()

        assert manager.get_valid_access_token("testmall") == "new-access"
        oauth.refresh.assert_called_once_with("testmall", "old-refresh")

    def test_refreshes_inside_buffer(self, manager, store_shop, oauth, repository, metrics):
        store_shop(expires_in=timedelta(minutes=4))
        oauth.refresh.return_value = _grant()

        assert manager.get_valid_access_token("testmall") == "new-access"

        shop = repository.get("testmall")
        assert shop.access_token == "new-access"
        assert shop.refresh_token == "new-refresh"
        assert ensure_utc(shop.expires_at) == NOW + timedelta(hours=2)
        assert _counter(metrics, "success") == 1

    def test_refreshes_expired_token(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(minutes=-30))
        oauth.refresh.return_value = _grant()

        assert manager.get_valid_access_token("testmall") == "new-access"

    def test_refreshes_when_expiry_unknown(self, manager, store_shop, oauth):
        store_shop(expires_in=None)
        oauth.refresh.return_value = _grant()

        assert manager.get_valid_access_token("testmall") == "new-access"

    def test_keeps_refresh_token_when_not_rotated(self, manager, store_shop, oauth, repository):
        store_shop(expires_in=timedelta(minutes=1))
        oauth.refresh.return_value = _grant(refresh=None)

        manager.get_valid_access_token("testmall")

        assert repository.get("testmall").refresh_token == "old-refresh"

    def test_default_lifetime_when_expiry_missing(self, manager, store_shop, oauth, repository):
        store_shop(expires_in=timedelta(minutes=1))
        oauth.refresh.return_value = _grant(expires_at=None)

        manager.get_valid_access_token("testmall")

        expires_at = ensure_utc(repository.get("testmall").expires_at)
        assert expires_at == NOW + DEFAULT_ACCESS_TOKEN_LIFETIME

    @pytest.mark.parametrize("error", [
        ReauthorizationRequiredError("invalid_grant", mall_id="testmall", status_code=400),
        TransientUpstreamError("Cafe24 token endpoint error: 503", status_code=503),
    ])
    def test_refresh_failure_leaves_record_unchanged(
        self, manager, store_shop, oauth, repository, metrics, error
    ):
        store_shop(expires_in=timedelta(minutes=2))
        oauth.refresh.side_effect = error

        assert manager.get_valid_access_token("testmall") is None

        shop = repository.get("testmall")
        assert shop.access_token == "old-access"
        assert shop.refresh_token == "old-refresh"
        assert ensure_utc(shop.expires_at) == NOW + timedelta(minutes=2)
        assert _counter(metrics, "failed") == 1

    def test_unknown_tenant(self, manager, oauth):
        assert manager.get_valid_access_token("nobody") is None
        oauth.refresh.assert_not_called()

    def test_disabled_tenant(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(minutes=1), enabled=False)

        assert manager.get_valid_access_token("testmall") is None
        oauth.refresh.assert_not_called()

    def test_missing_refresh_token(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(minutes=1), refresh_token=None)

        assert manager.get_valid_access_token("testmall") is None
        oauth.refresh.assert_not_called()

    def test_refresh_invalidates_cached_summary(self, manager, store_shop, oauth, directory, cache):
        store_shop(expires_in=timedelta(minutes=1))
        directory.get_summary("testmall")
        assert cache.get("shop", "testmall") is not None

        oauth.refresh.return_value = _grant()
        manager.get_valid_access_token("testmall")

        assert cache.get("shop", "testmall") is None


class InMemoryShopRepository:
    """Thread-safe stand-in for ShopRepository holding a single record"""

    def __init__(self, shop):
        self.shop = shop
        self.updates = 0

    def get(self, mall_id):
        return self.shop if self.shop.mall_id == mall_id else None

    def update_tokens(self, mall_id, access_token, refresh_token, expires_at,
                      refresh_expires_at=None):
        self.shop.access_token = access_token
        self.shop.refresh_token = refresh_token
        self.shop.expires_at = expires_at
        self.updates += 1
        return self.shop


class TestSingleFlightRefresh:
    """Concurrent callers for one tenant trigger one refresh grant"""

    def test_concurrent_callers_share_one_refresh(self, oauth, metrics):
        shop = Shop(
            mall_id="concurrentmall",
            access_token="old-access",
            refresh_token="old-refresh",
            expires_at=NOW + timedelta(minutes=1),
            enabled=True,
        )
        repository = InMemoryShopRepository(shop)

        def slow_refresh(mall_id, refresh_token):
            time.sleep(0.1)
            return _grant()

        oauth.refresh.side_effect = slow_refresh
        manager = TokenLifecycleManager(repository, oauth, clock=lambda: NOW, metrics=metrics)

        barrier = threading.Barrier(5)
        results = []

        def worker():
            barrier.wait()
            results.append(manager.get_valid_access_token("concurrentmall"))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == ["new-access"] * 5
        assert oauth.refresh.call_count == 1
        assert repository.updates == 1


class TestExchangeAuthorizationCode:
    """Test the authorization-code grant"""

    def test_stores_integration(self, manager, oauth, repository):
        oauth.exchange_code.return_value = _grant(access="first-access", refresh="first-refresh")

        shop = manager.exchange_authorization_code("testmall", "auth-code")

        oauth.exchange_code.assert_called_once_with("testmall", "auth-code")
        stored = repository.get("testmall")
        assert shop.mall_id == "testmall"
        assert stored.access_token == "first-access"
        assert stored.refresh_token == "first-refresh"
        assert stored.scopes == ["mall.read_product", "mall.write_product"]
        assert stored.user_id == "admin"
        assert stored.enabled is True

    def test_reauthorization_overwrites_tokens(self, manager, oauth, repository, store_shop):
        store_shop(enabled=False)
        oauth.exchange_code.return_value = _grant(access="again-access")

        manager.exchange_authorization_code("testmall", "auth-code")

        stored = repository.get("testmall")
        assert stored.access_token == "again-access"
        assert stored.enabled is True

    def test_defaults_for_missing_fields(self, manager, oauth, repository):
        grant = _grant(expires_at=None)
        grant.shop_no = None
        grant.issued_at = None
        oauth.exchange_code.return_value = grant

        manager.exchange_authorization_code("testmall", "auth-code")

        stored = repository.get("testmall")
        assert ensure_utc(stored.expires_at) == NOW + DEFAULT_ACCESS_TOKEN_LIFETIME
        assert ensure_utc(stored.issued_at) == NOW
        assert stored.shop_no == "1"

    def test_keeps_state_mall_id(self, manager, oauth, repository):
        grant = _grant()
        grant.mall_id = "othermall"
        oauth.exchange_code.return_value = grant

        manager.exchange_authorization_code("testmall", "auth-code")

        assert repository.get("testmall") is not None
        assert repository.get("othermall") is None

    def test_rejected_code_stores_nothing(self, manager, oauth, repository):
        oauth.exchange_code.side_effect = TokenExchangeError(
            "Cafe24 rejected the authorization_code grant",
            mall_id="testmall",
            status_code=400,
        )

        with pytest.raises(TokenExchangeError):
            manager.exchange_authorization_code("testmall", "bad-code")

        assert repository.get("testmall") is None


class TestForcedRefresh:
    def test_refresh_ignores_remaining_lifetime(self, manager, store_shop, oauth):
        store_shop(expires_in=timedelta(hours=1))
        oauth.refresh.return_value = _grant()

        assert manager.refresh("testmall") == "new-access"
        oauth.refresh.assert_called_once_with("testmall", "old-refresh")

    def test_refresh_unknown_tenant(self, manager, oauth):
        assert manager.refresh("nobody") is None
        oauth.refresh.assert_not_called()


class TestStorageFailure:
    """Tokens that could not be stored are never returned"""

    def test_refresh_propagates(self, manager, store_shop, oauth, repository, fail_commits):
        store_shop(expires_in=timedelta(hours=1))
        oauth.refresh.return_value = _grant()
        fail_commits()

        with pytest.raises(DatabaseError):
            manager.refresh("testmall")

        assert repository.get("testmall").access_token == "old-access"

    def test_refresh_inside_buffer_propagates(self, manager, store_shop, oauth, fail_commits):
        store_shop(expires_in=timedelta(minutes=1))
        oauth.refresh.return_value = _grant()
        fail_commits()

        with pytest.raises(DatabaseError):
            manager.get_valid_access_token("testmall")

    def test_exchange_propagates(self, manager, oauth, repository, fail_commits):
        oauth.exchange_code.return_value = _grant(access="first-access")
        fail_commits()

        with pytest.raises(DatabaseError):
            manager.exchange_authorization_code("testmall", "auth-code")

        assert repository.get("testmall") is None
