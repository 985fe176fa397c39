"""
Launch gate: admits a storefront opened from the Cafe24 admin.

Order of checks:
1. required parameters (mall_id, user_id, timestamp)
2. HMAC signature over the raw query string; parameters are taken from the
   signed part only
3. replay window on ``timestamp``
4. tenant lookup: first-run tenants go to the OAuth flow, known tenants get
   a session and land on the dashboard
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import parse_qsl, urlencode

from funding_pricer.auth.session import SessionManager
from funding_pricer.monitoring.prometheus_metrics import PrometheusMetrics, get_metrics
from funding_pricer.security.replay import is_replay
from funding_pricer.security.signature import split_signed_query, verify_signature
from funding_pricer.services.shop_directory import ShopDirectory
from funding_pricer.utils.config import Settings
from funding_pricer.utils.exceptions import (
    ConfigurationError,
    InvalidSignatureError,
    ReplayRejectedError,
    ValidationError,
)
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

_REQUIRED_PARAMS = ("mall_id", "user_id", "timestamp")


@dataclass
class LaunchDecision:
    """Where to send the operator, and the session to set if admitted."""

    mall_id: str
    redirect_url: str
    session_token: Optional[str] = None

    @property
    def admitted(self) -> bool:
        return self.session_token is not None


class LaunchGate:
    """Verifies launch requests and decides admit vs. authorize."""

    def __init__(
        self,
        directory: ShopDirectory,
        session_manager: SessionManager,
        settings: Settings,
        metrics: Optional[PrometheusMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.session_manager = session_manager
        self.settings = settings
        self.metrics = metrics or get_metrics()
        self.clock = clock

    def admit(self, url: str, params: Mapping[str, str]) -> LaunchDecision:
        """
        Run the launch checks.

        Parameters are read from the signed part of the raw query string only,
        so nothing appended after ``hmac`` can change the mall, user or
        timestamp being verified.

        Args:
            url: Full request URL with the query string exactly as received
            params: Decoded query parameters, used only for unsigned
                development launches

        Raises:
            ValidationError: Missing parameter, or unsigned request where
                unsigned launches are not allowed
            InvalidSignatureError: HMAC mismatch, parameters after ``hmac`` or
                repeated parameters
            ReplayRejectedError: Timestamp outside the window
            ConfigurationError: No client secret configured
        """
        parts = split_signed_query(url)
        if parts is None:
            launch_params = dict(params)
            signature = None
        else:
            signed_query, signature = parts
            launch_params = self._signed_params(signed_query, signature)

        for name in _REQUIRED_PARAMS:
            if not launch_params.get(name):
                raise ValidationError(
                    f"{name} parameter is required",
                    field=name,
                    code=f"MISSING_{name.upper()}",
                )

        mall_id = launch_params["mall_id"]
        user_id = launch_params["user_id"]
        if parts is None and params.get("hmac"):
            raise InvalidSignatureError(
                "hmac must be the last query parameter",
                {"mall_id": mall_id},
            )
        self._check_signature(url, signature, mall_id)

        if is_replay(launch_params["timestamp"], now=self.clock()):
            self.metrics.track_replay_rejection()
            raise ReplayRejectedError(
                "Request timestamp is outside the 2 hour window",
                {"mall_id": mall_id},
            )

        if self.directory.needs_authorization(mall_id):
            logger.warning(f"Mall {mall_id} has no active integration, sending to OAuth")
            return LaunchDecision(
                mall_id=mall_id,
                redirect_url=self._app_url("/", mall_id=mall_id, oauth_required="true"),
            )

        token = self.session_manager.create_session(
            mall_id,
            user_id=user_id,
            shop_no=launch_params.get("shop_no"),
        )
        logger.info(f"Launch admitted for mall {mall_id} (user {user_id})")
        return LaunchDecision(
            mall_id=mall_id,
            redirect_url=self._app_url("/dashboard", mall_id=mall_id),
            session_token=token,
        )

    def _signed_params(self, signed_query: str, signature: str) -> Dict[str, str]:
        if "&" in signature:
            self.metrics.track_signature(False)
            raise InvalidSignatureError("Unsigned parameters follow the hmac parameter")

        launch_params: Dict[str, str] = {}
        for name, value in parse_qsl(signed_query, keep_blank_values=True):
            if name in launch_params or name == "hmac":
                self.metrics.track_signature(False)
                raise InvalidSignatureError(
                    f"Parameter {name} is repeated in the launch request",
                    {"parameter": name},
                )
            launch_params[name] = value
        return launch_params

    def _check_signature(self, url: str, signature: Optional[str], mall_id: str) -> None:
        if not signature:
            if self.settings.allow_unsigned_launch and not self.settings.is_production:
                logger.warning(f"Unsigned launch accepted for mall {mall_id} (development only)")
                return
            raise ValidationError(
                "hmac parameter is required",
                field="hmac",
                code="MISSING_HMAC",
            )

        secret = self.settings.cafe24_client_secret
        if not secret:
            raise ConfigurationError("CAFE24_CLIENT_SECRET is not configured")

        valid = verify_signature(url, signature, secret)
        self.metrics.track_signature(valid)
        if not valid:
            raise InvalidSignatureError(
                "Invalid HMAC, the request may have been tampered with",
                {"mall_id": mall_id},
            )

    def _app_url(self, path: str, **query: str) -> str:
        return f"{self.settings.app_url.rstrip('/')}{path}?{urlencode(query)}"
