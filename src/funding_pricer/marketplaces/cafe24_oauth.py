"""
Cafe24 OAuth 2.0 client.

Handles the two token-endpoint grants (authorization code and refresh token)
and builds the authorize URL the operator is sent to. The token endpoint is
never retried automatically: a retried code exchange would fail anyway and a
retried refresh could burn a rotated refresh token.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from funding_pricer.marketplaces.base import validate_mall_id
from funding_pricer.utils.config import Settings, get_config
from funding_pricer.utils.exceptions import (
    ReauthorizationRequiredError,
    TokenExchangeError,
    TransientUpstreamError,
)
from funding_pricer.utils.logger import get_logger
from funding_pricer.utils.timeutils import parse_provider_timestamp

logger = get_logger(__name__)


@dataclass
class TokenGrant:
    """Normalized token-endpoint response. All datetimes are aware UTC."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    refresh_expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    scopes: List[str] = field(default_factory=list)
    user_id: Optional[str] = None
    mall_id: Optional[str] = None
    shop_no: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], provider_tz: timezone) -> "TokenGrant":
        """
        Build a grant from the raw JSON body.

        Raises:
            ValueError: If a timestamp is not ISO-8601
        """
        scopes = payload.get("scopes") or []
        if isinstance(scopes, str):
            scopes = scopes.split()

        shop_no = payload.get("shop_no")

        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=parse_provider_timestamp(payload.get("expires_at"), provider_tz),
            refresh_expires_at=parse_provider_timestamp(
                payload.get("refresh_token_expires_at"), provider_tz
            ),
            issued_at=parse_provider_timestamp(payload.get("issued_at"), provider_tz),
            scopes=list(scopes),
            user_id=payload.get("user_id"),
            mall_id=payload.get("mall_id"),
            shop_no=str(shop_no) if shop_no is not None else None,
        )


class Cafe24OAuthClient:
    """Token endpoint and authorize URL for one Cafe24 app."""

    def __init__(self, settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None):
        """
        Initialize OAuth client.

        Args:
            settings: Application settings (default from environment)
            session: HTTP session (injected by tests)
        """
        self.settings = settings or get_config()
        self.timeout = self.settings.http_timeout_seconds
        self.session = session or requests.Session()

    def token_url(self, mall_id: str) -> str:
        validate_mall_id(mall_id)
        return f"https://{mall_id}.{self.settings.cafe24_base_domain}/api/v2/oauth/token"

    def build_authorize_url(self, mall_id: str, state: str,
                            scopes: Optional[List[str]] = None) -> str:
        """
        Build the provider URL that asks the operator to grant the app access.

        Args:
            mall_id: Tenant to authorize
            state: CSRF state already persisted for this tenant
            scopes: Scopes to request (default from settings)
        """
        validate_mall_id(mall_id)
        query = urlencode({
            "response_type": "code",
            "client_id": self.settings.cafe24_client_id,
            "redirect_uri": self.settings.cafe24_redirect_uri,
            "state": state,
            "scope": " ".join(scopes or self.settings.scope_list),
        })
        return (
            f"https://{mall_id}.{self.settings.cafe24_base_domain}"
            f"/api/v2/oauth/authorize?{query}"
        )

    def exchange_code(self, mall_id: str, code: str) -> TokenGrant:
        """
        Exchange an authorization code for tokens.

        Raises:
            TokenExchangeError: The provider rejected the code (4xx) or
                answered without an access token
            TransientUpstreamError: Network failure, timeout or 5xx
        """
        payload = self._request_token(mall_id, {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.cafe24_redirect_uri,
        }, rejected_error=TokenExchangeError)
        return self._to_grant(mall_id, payload, TokenExchangeError)

    def refresh(self, mall_id: str, refresh_token: str) -> TokenGrant:
        """
        Use a refresh token to obtain a new access token.

        Raises:
            ReauthorizationRequiredError: The refresh token was rejected or
                the response carried no access token
            TransientUpstreamError: Network failure, timeout or 5xx
        """
        payload = self._request_token(mall_id, {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }, rejected_error=ReauthorizationRequiredError)
        return self._to_grant(mall_id, payload, ReauthorizationRequiredError)

    def _request_token(self, mall_id: str, form: Dict[str, str],
                       rejected_error: type) -> Dict[str, Any]:
        url = self.token_url(mall_id)
        grant_type = form["grant_type"]

        try:
            logger.debug(f"Requesting {grant_type} grant for mall {mall_id}")
            response = self.session.post(
                url,
                data=form,
                auth=(self.settings.cafe24_client_id, self.settings.cafe24_client_secret),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise TransientUpstreamError(
                f"Token request timeout after {self.timeout}s", endpoint=url
            )
        except requests.exceptions.RequestException as e:
            raise TransientUpstreamError(f"Token request failed: {e}", endpoint=url)

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 500:
            raise TransientUpstreamError(
                f"Cafe24 token endpoint error: {response.status_code}",
                status_code=response.status_code,
                response_data=body,
                endpoint=url,
            )
        if not response.ok:
            logger.error(
                f"{grant_type} grant rejected for mall {mall_id}: "
                f"status={response.status_code} error={body.get('error')} "
                f"description={body.get('error_description')}"
            )
            raise rejected_error(
                f"Cafe24 rejected the {grant_type} grant",
                mall_id=mall_id,
                status_code=response.status_code,
                response_data=body,
                endpoint=url,
            )
        return body

    def _to_grant(self, mall_id: str, payload: Dict[str, Any],
                  rejected_error: type) -> TokenGrant:
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise rejected_error(
                "Token response did not contain an access token",
                mall_id=mall_id,
                response_data=payload if isinstance(payload, dict) else None,
            )
        try:
            return TokenGrant.from_payload(payload, self.settings.provider_timezone)
        except ValueError as e:
            raise rejected_error(
                f"Token response has malformed timestamps: {e}",
                mall_id=mall_id,
            ) from e
