"""
OAuth authorization-code flow with Cafe24.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from funding_pricer.api.dependencies import (
    get_catalog_client_factory,
    get_csrf_store,
    get_oauth_client,
    get_sessions,
    get_settings,
    get_shop_directory,
    get_token_manager,
)
from funding_pricer.auth.session import SessionManager
from funding_pricer.auth.token_manager import TokenLifecycleManager
from funding_pricer.marketplaces.base import validate_mall_id
from funding_pricer.marketplaces.cafe24_oauth import Cafe24OAuthClient
from funding_pricer.marketplaces.factory import CatalogClientFactory
from funding_pricer.security.csrf_state import CsrfStateStore
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.config import Settings
from funding_pricer.utils.exceptions import InvalidStateError, ValidationError
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/authorize")
def authorize(
    mall_id: Optional[str] = None,
    state: Optional[str] = None,
    store: CsrfStateStore = Depends(get_csrf_store),
    oauth_client: Cafe24OAuthClient = Depends(get_oauth_client),
):
    """
    Send the operator to the Cafe24 consent page.

    A browser-generated ``state`` of the form ``<mall_id>:<random>`` is
    accepted and stored; without one the server issues its own.
    """
    if not mall_id:
        raise ValidationError("mall_id parameter is required", field="mall_id", code="MISSING_MALL_ID")
    validate_mall_id(mall_id)

    if state:
        store.register(mall_id, state)
    else:
        state = store.issue(mall_id)

    logger.info(f"Redirecting mall {mall_id} to Cafe24 authorization")
    return RedirectResponse(oauth_client.build_authorize_url(mall_id, state))


@router.get("/callback")
def callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    store: CsrfStateStore = Depends(get_csrf_store),
    token_manager: TokenLifecycleManager = Depends(get_token_manager),
    directory: ShopDirectory = Depends(get_shop_directory),
    client_factory: CatalogClientFactory = Depends(get_catalog_client_factory),
    sessions: SessionManager = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
):
    """
    Complete the authorization: consume state, exchange the code, capture
    store details and start a session.
    """
    app_url = settings.app_url.rstrip("/")

    if error:
        logger.error(f"OAuth error from Cafe24: {error} ({error_description})")
        query = urlencode({
            "error": "oauth_failed",
            "error_description": error_description or error,
            "mall_id": state.split(":", 1)[0] if state else "",
        })
        return RedirectResponse(f"{app_url}/?{query}")

    if not code or not state:
        raise ValidationError("Missing code or state", code="MISSING_CODE_OR_STATE")

    mall_id = store.consume(state)
    if mall_id is None:
        raise InvalidStateError("Invalid or expired state parameter")

    shop = token_manager.exchange_authorization_code(mall_id, code)

    catalog = client_factory(mall_id, shop.access_token, shop.shop_no)
    directory.capture_store_info(mall_id, catalog)

    token = sessions.create_session(mall_id, user_id=shop.user_id, shop_no=shop.shop_no)
    response = RedirectResponse(f"{app_url}/dashboard?{urlencode({'mall_id': mall_id})}")
    sessions.set_cookie(response, token)

    logger.info(f"OAuth completed for mall {mall_id}")
    return response
