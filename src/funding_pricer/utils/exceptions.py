"""
Custom exceptions for Funding Pricer.

The hierarchy separates input errors, trust-boundary denials, upstream
(Cafe24) failures and persistence failures so the API layer can answer each
one differently.
"""

from typing import Optional, Dict, Any


class FundingPricerError(Exception):
    """Base exception for all Funding Pricer errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception with message and optional details.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(FundingPricerError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(FundingPricerError):
    """Raised when a required parameter is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None,
                 value: Optional[Any] = None, code: Optional[str] = None):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            value: Invalid value
            code: Machine readable error code
        """
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if code:
            details["code"] = code

        super().__init__(message, details)
        self.field = field
        self.value = value
        self.code = code


class TrustError(FundingPricerError):
    """Base class for requests denied at the trust boundary."""

    code = "TRUST_DENIED"


class InvalidSignatureError(TrustError):
    """Raised when a launch request's HMAC does not verify."""

    code = "INVALID_HMAC"


class ReplayRejectedError(TrustError):
    """Raised when a launch request's timestamp is outside the replay window."""

    code = "TIMESTAMP_TOO_OLD"


class InvalidStateError(TrustError):
    """Raised when an OAuth state is malformed, unknown, expired or reused."""

    code = "INVALID_STATE"


class UnauthorizedError(TrustError):
    """Raised when a request carries no valid session."""

    code = "UNAUTHORIZED"


class ForbiddenError(TrustError):
    """Raised when a session tries to act on another mall."""

    code = "FORBIDDEN"


class APIError(FundingPricerError):
    """Base class for upstream API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_data: Optional[Any] = None,
                 endpoint: Optional[str] = None):
        """
        Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: API response body (parsed JSON or text)
            endpoint: API endpoint that failed
        """
        details = {}
        if status_code:
            details["status_code"] = status_code
        if response_data:
            details["response_data"] = response_data
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(message, details)
        self.status_code = status_code
        self.response_data = response_data
        self.endpoint = endpoint


class PlatformAPIError(APIError):
    """Raised when a Cafe24 API call fails with a non-retryable client error."""
    pass


class ReauthorizationRequiredError(APIError):
    """
    Raised when the tenant must go through the OAuth flow again.

    Covers missing integrations, rejected or revoked tokens and failed
    authorization-code exchanges.
    """

    def __init__(self, message: str, mall_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.mall_id = mall_id
        if mall_id:
            self.details["mall_id"] = mall_id


class TransientUpstreamError(APIError):
    """Raised on network failures, timeouts and 5xx responses."""
    pass


class RateLimitError(TransientUpstreamError):
    """Raised when API rate limits are exceeded."""

    def __init__(self, message: str, retry_after: Optional[int] = None,
                 endpoint: Optional[str] = None):
        super().__init__(message, status_code=429, endpoint=endpoint)
        self.retry_after = retry_after
        if retry_after:
            self.details["retry_after"] = retry_after


class TokenExchangeError(ReauthorizationRequiredError):
    """Raised when the authorization-code grant is rejected."""
    pass


class DatabaseError(FundingPricerError):
    """Raised when database operations fail."""

    def __init__(self, message: str, operation: Optional[str] = None,
                 table: Optional[str] = None):
        """
        Initialize database error.

        Args:
            message: Error message
            operation: Database operation that failed
            table: Table involved in operation
        """
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table

        super().__init__(message, details=details)
        self.operation = operation
        self.table = table


class NotFoundError(FundingPricerError):
    """Raised when a requested record does not exist."""
    pass


def _response_body(response) -> Any:
    try:
        return response.json()
    except ValueError:
        return getattr(response, "text", None)


def handle_api_error(response, endpoint: Optional[str] = None) -> None:
    """
    Map a failed HTTP response to the matching APIError subclass and raise it.

    Args:
        response: requests.Response with a non-success status
        endpoint: API endpoint that was called

    Raises:
        ReauthorizationRequiredError: 401/403
        RateLimitError: 429
        TransientUpstreamError: 5xx
        PlatformAPIError: any other status
    """
    status_code = getattr(response, 'status_code', None)
    response_data = _response_body(response)

    if status_code in (401, 403):
        raise ReauthorizationRequiredError(
            "Cafe24 rejected the access token",
            status_code=status_code,
            response_data=response_data,
            endpoint=endpoint,
        )
    if status_code == 429:
        retry_after = response.headers.get("Retry-After") if response.headers else None
        raise RateLimitError(
            "Cafe24 API rate limit exceeded",
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            endpoint=endpoint,
        )
    if status_code is not None and status_code >= 500:
        raise TransientUpstreamError(
            f"Cafe24 server error: {status_code}",
            status_code=status_code,
            response_data=response_data,
            endpoint=endpoint,
        )
    raise PlatformAPIError(
        f"Cafe24 API request failed: {status_code}",
        status_code=status_code,
        response_data=response_data,
        endpoint=endpoint,
    )
