"""
Global error handling middleware.

Maps the FundingPricerError hierarchy to JSON responses of the form
``{"success": false, "error": ..., "code": ..., "details": ...}``.
"""

import time
from urllib.parse import urlencode

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import SQLAlchemyError

from funding_pricer.utils.exceptions import (
    APIError,
    ConfigurationError,
    DatabaseError,
    ForbiddenError,
    FundingPricerError,
    InvalidStateError,
    NotFoundError,
    RateLimitError,
    ReauthorizationRequiredError,
    TransientUpstreamError,
    TrustError,
    ValidationError,
)
from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


def _error(status_code: int, message: str, code: str, details=None, headers=None) -> JSONResponse:
    content = {"success": False, "error": message, "code": code}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for consistent error handling and logging.
    """

    async def dispatch(self, request: Request, call_next):
        """Process request with error handling."""
        start_time = time.time()

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s"
            )

            return response

        except ValidationError as e:
            logger.warning(f"Validation error: {e}")
            status_code = (
                status.HTTP_409_CONFLICT
                if e.code == "DUPLICATE_PRODUCT"
                else status.HTTP_400_BAD_REQUEST
            )
            return _error(status_code, e.message, e.code or "VALIDATION_ERROR", e.details)

        except InvalidStateError as e:
            logger.warning(f"OAuth state rejected: {e}")
            return _error(status.HTTP_400_BAD_REQUEST, e.message, e.code)

        except ForbiddenError as e:
            return _error(status.HTTP_403_FORBIDDEN, e.message, e.code)

        except TrustError as e:
            logger.warning(f"Trust boundary denial ({e.code}): {e}")
            return _error(status.HTTP_401_UNAUTHORIZED, e.message, e.code)

        except NotFoundError as e:
            return _error(status.HTTP_404_NOT_FOUND, e.message, "NOT_FOUND", e.details)

        except ReauthorizationRequiredError as e:
            logger.warning(f"Re-authorization required: {e}")
            details = {}
            if e.mall_id:
                details["authorize_url"] = (
                    "/api/oauth/authorize?" + urlencode({"mall_id": e.mall_id})
                )
            return _error(
                status.HTTP_401_UNAUTHORIZED,
                e.message,
                "REAUTHORIZATION_REQUIRED",
                details,
            )

        except RateLimitError as e:
            logger.warning(f"Upstream rate limit: {e}")
            headers = {"Retry-After": str(e.retry_after)} if e.retry_after else None
            return _error(
                status.HTTP_429_TOO_MANY_REQUESTS,
                e.message,
                "RATE_LIMITED",
                headers=headers,
            )

        except TransientUpstreamError as e:
            logger.error(f"Upstream unavailable: {e}")
            return _error(status.HTTP_503_SERVICE_UNAVAILABLE, e.message, "UPSTREAM_UNAVAILABLE")

        except APIError as e:
            logger.error(f"API error: {e}")
            return _error(status.HTTP_502_BAD_GATEWAY, e.message, "UPSTREAM_ERROR")

        except DatabaseError as e:
            logger.error(f"Database error: {e}", exc_info=True)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "A database error occurred",
                "DATABASE_ERROR",
            )

        except SQLAlchemyError as e:
            logger.error(f"SQLAlchemy error: {e}", exc_info=True)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "A database error occurred",
                "DATABASE_ERROR",
            )

        except ConfigurationError as e:
            logger.critical(f"Configuration error: {e}")
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Server configuration error",
                "CONFIGURATION_ERROR",
            )

        except FundingPricerError as e:
            logger.error(f"Funding Pricer error: {e}")
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message, "INTERNAL_ERROR")

        except Exception as e:
            logger.error(f"Unhandled exception: {e}", exc_info=True)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "An unexpected error occurred",
                "INTERNAL_ERROR",
            )
