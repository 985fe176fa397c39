"""
FastAPI dependency providers.

Every collaborator is built per request from the request's database session,
so tests can swap any layer with ``app.dependency_overrides``.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from funding_pricer.auth.session import SESSION_COOKIE_NAME, SessionManager, get_session_manager
from funding_pricer.auth.token_manager import TokenLifecycleManager
from funding_pricer.cache.base import CacheBackend
from funding_pricer.cache.redis_cache import get_cache
from funding_pricer.database.connection import get_db
from funding_pricer.database.operations import (
    FundingProductRepository,
    OAuthStateRepository,
    ShopRepository,
)
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient
from funding_pricer.marketplaces.factory import CatalogClientFactory, create_catalog_client
from funding_pricer.security.csrf_state import CsrfStateStore
from funding_pricer.services.funding_products import FundingProductService
from funding_pricer.services.funding_sync import FundingSyncService
from funding_pricer.services.launch import LaunchGate
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.config import Settings, get_config
from funding_pricer.utils.exceptions import ForbiddenError, UnauthorizedError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


def get_settings() -> Settings:
    return get_config()


def get_cache_backend() -> Optional[CacheBackend]:
    return get_cache()


def get_sessions() -> SessionManager:
    return get_session_manager()


def get_oauth_client(settings: Settings = Depends(get_settings)) -> Cafe24OAuthClient:
    return Cafe24OAuthClient(settings)


def get_catalog_client_factory() -> CatalogClientFactory:
    return create_catalog_client


def get_shop_directory(
    db: Session = Depends(get_db),
    cache: Optional[CacheBackend] = Depends(get_cache_backend),
    settings: Settings = Depends(get_settings),
) -> ShopDirectory:
    return ShopDirectory(ShopRepository(db), cache, settings.shop_cache_ttl_seconds)


def get_token_manager(
    db: Session = Depends(get_db),
    oauth_client: Cafe24OAuthClient = Depends(get_oauth_client),
    directory: ShopDirectory = Depends(get_shop_directory),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(ShopRepository(db), oauth_client, directory)


def get_csrf_store(db: Session = Depends(get_db)) -> CsrfStateStore:
    return CsrfStateStore(OAuthStateRepository(db))


def get_launch_gate(
    directory: ShopDirectory = Depends(get_shop_directory),
    sessions: SessionManager = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
) -> LaunchGate:
    return LaunchGate(directory, sessions, settings)


def get_funding_product_service(
    db: Session = Depends(get_db),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    client_factory: CatalogClientFactory = Depends(get_catalog_client_factory),
) -> FundingProductService:
    return FundingProductService(FundingProductRepository(db), token_manager, client_factory)


def get_funding_sync_service(
    db: Session = Depends(get_db),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    directory: ShopDirectory = Depends(get_shop_directory),
    client_factory: CatalogClientFactory = Depends(get_catalog_client_factory),
) -> FundingSyncService:
    return FundingSyncService(
        token_manager,
        FundingProductRepository(db),
        directory=directory,
        client_factory=client_factory,
    )


def get_current_session(
    request: Request,
    sessions: SessionManager = Depends(get_sessions),
) -> Dict[str, Any]:
    """
    Session of the calling browser.

    Raises:
        UnauthorizedError: No cookie, or the token does not verify
    """
    payload = sessions.verify_session(request.cookies.get(SESSION_COOKIE_NAME))
    if payload is None:
        raise UnauthorizedError("Authentication required")
    return payload


def require_mall_access(mall_id: Optional[str], session: Dict[str, Any]) -> str:
    """
    Check that ``session`` may act on ``mall_id``.

    Raises:
        ForbiddenError: The session belongs to a different mall
    """
    if not mall_id or session.get("mall_id") != mall_id:
        logger.warning(
            f"Mall access denied: session mall {session.get('mall_id')}, requested {mall_id}"
        )
        raise ForbiddenError("Access to this mall is not allowed", {"mall_id": mall_id})
    return mall_id
