"""
Test configuration and fixtures for Funding Pricer
"""
import os

# Settings are read at import time; pin them before importing the package
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_TO_FILE"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ["CAFE24_CLIENT_ID"] = "test-client-id"
os.environ["CAFE24_CLIENT_SECRET"] = "test-client-secret"
os.environ["CAFE24_REDIRECT_URI"] = "https://app.example.com/api/oauth/callback"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["APP_URL"] = "https://app.example.com"
os.environ["SENTRY_DSN"] = ""

from datetime import timedelta
from typing import Generator
from unittest.mock import MagicMock
from urllib.parse import quote, urlencode

import fakeredis
import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from funding_pricer.api.dependencies import (
    get_cache_backend,
    get_catalog_client_factory,
    get_oauth_client,
    get_sessions,
    get_settings,
)
from funding_pricer.api.main import app
from funding_pricer.auth.session import SESSION_COOKIE_NAME, SessionManager
from funding_pricer.cache.redis_cache import RedisCache
from funding_pricer.database.connection import get_db
from funding_pricer.database.models import Base
from funding_pricer.database.operations import FundingProductRepository, ShopRepository
from funding_pricer.marketplaces.base import CatalogClient, CatalogCredentials
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient
from funding_pricer.monitoring.prometheus_metrics import PrometheusMetrics
from funding_pricer.security.signature import compute_signature
from funding_pricer.utils.config import Settings
from funding_pricer.utils.timeutils import utcnow

TEST_MALL_ID = "testmall"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_JWT_SECRET = "test-jwt-secret"
TEST_APP_URL = "https://app.example.com"


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Settings with test credentials, independent of the environment"""
    return Settings(
        cafe24_client_id="test-client-id",
        cafe24_client_secret=TEST_CLIENT_SECRET,
        cafe24_redirect_uri=f"{TEST_APP_URL}/api/oauth/callback",
        app_url=TEST_APP_URL,
        jwt_secret=TEST_JWT_SECRET,
        database_url="sqlite://",
        environment="test",
    )


# =============================================================================
# Test Database Setup
# =============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    """Create a new database session for each test"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def fail_commits(db_session, monkeypatch):
    """Make every later commit on the test session fail like a lost database"""
    def _fail_commits():
        def _commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        monkeypatch.setattr(db_session, "commit", _commit)
    return _fail_commits


# =============================================================================
# Cache and metrics
# =============================================================================

@pytest.fixture
def redis_client():
    """In-process Redis replacement"""
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def cache(redis_client) -> RedisCache:
    return RedisCache(client=redis_client, default_ttl=60)


@pytest.fixture
def metrics() -> PrometheusMetrics:
    """Metrics on a private registry so counts start at zero"""
    return PrometheusMetrics(registry=CollectorRegistry())


# =============================================================================
# HTTP and catalog doubles
# =============================================================================

@pytest.fixture
def make_response():
    """Build a fake requests.Response"""
    def _make(status_code=200, json_data=None, headers=None, text=""):
        response = MagicMock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.headers = headers or {}
        response.text = text
        if json_data is None:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = json_data
        return response
    return _make


@pytest.fixture
def oauth_http():
    """Mocked requests session behind the OAuth client"""
    return MagicMock()


@pytest.fixture
def oauth_client(settings, oauth_http) -> Cafe24OAuthClient:
    return Cafe24OAuthClient(settings, session=oauth_http)


class FakeCatalog(CatalogClient):
    """In-memory catalog that records every call"""

    def __init__(self, mall_id: str = TEST_MALL_ID):
        super().__init__(CatalogCredentials(mall_id=mall_id, access_token="access-token"))
        self.product = {"product_no": 1001, "product_name": "Funding Tumbler", "price": "10000.00"}
        self.store = {
            "shop_name": "Test Mall",
            "primary_domain": "testmall.example.com",
            "base_domain": "testmall.cafe24.com",
            "country": "South Korea",
            "country_code": "KR",
        }
        self.orders = []
        self.price_updates = []
        self.order_queries = []
        self.orders_error = None
        self.price_error = None
        self.store_error = None
        self.product_error = None

    @property
    def platform_name(self) -> str:
        return "fake"

    def get_product(self, product_no):
        if self.product_error:
            raise self.product_error
        return dict(self.product, product_no=product_no)

    def update_product_price(self, product_no, price):
        if self.price_error:
            raise self.price_error
        self.price_updates.append((product_no, price))
        return {"product_no": product_no, "price": str(price)}

    def get_orders(self, product_no=None, start_date=None, end_date=None,
                   include_cancellations=False):
        self.order_queries.append({
            "product_no": product_no,
            "start_date": start_date,
            "end_date": end_date,
            "include_cancellations": include_cancellations,
        })
        if self.orders_error:
            raise self.orders_error
        return list(self.orders)

    def get_store(self):
        if self.store_error:
            raise self.store_error
        return dict(self.store)


def make_orders(product_no: str, *quantities):
    """One order per quantity, each with a single matching item"""
    return [
        {
            "order_id": f"20260301-00000{index}",
            "items": [{"product_no": int(product_no), "quantity": str(quantity)}],
        }
        for index, quantity in enumerate(quantities, start=1)
    ]


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def order_factory():
    return make_orders


@pytest.fixture
def catalog_factory(fake_catalog):
    """Catalog client factory that always hands out ``fake_catalog``"""
    calls = []

    def factory(mall_id, access_token, shop_no="1"):
        calls.append((mall_id, access_token, shop_no))
        return fake_catalog

    factory.calls = calls
    return factory


# =============================================================================
# Sessions and launch signing
# =============================================================================

@pytest.fixture
def session_manager(settings) -> SessionManager:
    return SessionManager(secret_key=TEST_JWT_SECRET, settings=settings)


@pytest.fixture
def sign_launch_query():
    """Build a launch query string signed the way Cafe24 signs it"""
    def _sign(params, secret=TEST_CLIENT_SECRET):
        query = urlencode(params)
        signature = compute_signature(query, secret)
        return f"{query}&hmac={quote(signature, safe='')}"
    return _sign


# =============================================================================
# Test Data Fixtures
# =============================================================================

@pytest.fixture
def shop(db_session):
    """Authorized tenant whose access token is good for two more hours"""
    return ShopRepository(db_session).upsert(TEST_MALL_ID, {
        "access_token": "access-token",
        "refresh_token": "refresh-token",
        "expires_at": utcnow() + timedelta(hours=2),
        "issued_at": utcnow(),
        "scopes": ["mall.read_product", "mall.write_product", "mall.read_order"],
        "user_id": "admin",
        "shop_no": "1",
        "enabled": True,
    })


@pytest.fixture
def funding_product(db_session):
    """Ladder [(100, 9000), (500, 8000)], initial 10000, multiplier 10"""
    return FundingProductRepository(db_session).insert({
        "mall_id": TEST_MALL_ID,
        "product_no": "1001",
        "product_name": "Funding Tumbler",
        "enabled": True,
        "initial_price": 10000,
        "price_steps": [{"target": 100, "price": 9000}, {"target": 500, "price": 8000}],
        "display_multiplier": 10,
        "include_cancellations": False,
        "current_sales": 0,
    })


# =============================================================================
# FastAPI Test Client
# =============================================================================

@pytest.fixture
def client(db_session, cache, settings, session_manager, oauth_client, catalog_factory) -> TestClient:
    """Create FastAPI test client with overridden dependencies"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_backend] = lambda: cache
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_sessions] = lambda: session_manager
    app.dependency_overrides[get_oauth_client] = lambda: oauth_client
    app.dependency_overrides[get_catalog_client_factory] = lambda: catalog_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def authed_client(client, session_manager) -> TestClient:
    """Test client carrying a session for ``testmall``"""
    token = session_manager.create_session(TEST_MALL_ID, user_id="admin", shop_no="1")
    client.cookies.set(SESSION_COOKIE_NAME, token)
    return client
