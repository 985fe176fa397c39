"""
Browser session tokens.

A session is an HS256 JWT bound to one mall_id, carried in an HttpOnly cookie
for seven days. It is issued after a verified launch or a completed OAuth
callback and checked by every funding-product endpoint.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from starlette.responses import Response

from funding_pricer.utils.config import Settings, get_config
from funding_pricer.utils.exceptions import ConfigurationError
from funding_pricer.utils.logger import get_logger
from funding_pricer.utils.timeutils import utcnow

logger = get_logger(__name__)

SESSION_COOKIE_NAME = "funding_pricer_session"
SESSION_LIFETIME = timedelta(days=7)

_DEV_SECRET = "dev-secret-key"


class SessionManager:
    """Creates and verifies session tokens."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: str = "HS256",
                 lifetime: timedelta = SESSION_LIFETIME,
                 settings: Optional[Settings] = None):
        """
        Initialize session manager.

        Args:
            secret_key: Signing key (default JWT_SECRET)
            algorithm: JWT algorithm
            lifetime: Session lifetime
            settings: Application settings

        Raises:
            ConfigurationError: If no secret is configured in production
        """
        settings = settings or get_config()
        self.secret_key = secret_key or settings.jwt_secret
        if not self.secret_key:
            if settings.is_production:
                raise ConfigurationError("JWT_SECRET environment variable is required in production")
            logger.warning("JWT_SECRET not set, using development signing key")
            self.secret_key = _DEV_SECRET

        self.algorithm = algorithm
        self.lifetime = lifetime
        self.secure_cookie = settings.is_production

    def create_session(self, mall_id: str, user_id: Optional[str] = None,
                       shop_no: Optional[str] = None) -> str:
        """
        Create a session token for ``mall_id``.

        Returns:
            Signed JWT string
        """
        now = utcnow()
        payload: Dict[str, Any] = {
            "mall_id": mall_id,
            "iat": now,
            "exp": now + self.lifetime,
        }
        if user_id:
            payload["user_id"] = user_id
        if shop_no:
            payload["shop_no"] = shop_no

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Created session for mall {mall_id} (expires in {self.lifetime})")
        return token

    def verify_session(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Decode a session token.

        Returns:
            Payload with at least ``mall_id``, ``iat`` and ``exp``, or None if
            the token is missing, forged, expired or malformed
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning(f"Session verification failed: {e}")
            return None

        if not isinstance(payload.get("mall_id"), str):
            logger.warning("Session payload has no mall_id")
            return None
        return payload

    def set_cookie(self, response: Response, token: str) -> Response:
        response.set_cookie(
            key=SESSION_COOKIE_NAME,
            value=token,
            max_age=int(self.lifetime.total_seconds()),
            path="/",
            httponly=True,
            secure=self.secure_cookie,
            samesite="lax",
        )
        return response

    def clear_cookie(self, response: Response) -> Response:
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")
        return response


_session_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """Get or create global session manager instance."""
    global _session_manager
    if _session_manager is None:
        _session_manager = SessionManager()
    return _session_manager

