"""
Health check endpoints.

Provides:
- Basic liveness check
- Readiness check (database, Redis)
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funding_pricer.api.dependencies import get_cache_backend
from funding_pricer.cache.base import CacheBackend
from funding_pricer.database.connection import get_db
from funding_pricer.utils.logger import get_logger
from funding_pricer.utils.timeutils import utcnow

logger = get_logger(__name__)

router = APIRouter()


@router.get("", status_code=status.HTTP_200_OK)
def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns 200 if application is running.
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": "funding-pricer",
    }


@router.get("/ready", status_code=status.HTTP_200_OK)
def readiness_check(
    response: Response,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache_backend),
) -> Dict[str, Any]:
    """
    Readiness check endpoint.

    Verifies connectivity to the database and the cache.
    """
    checks = {
        "database": _check_database(db),
        "redis": _check_cache(cache),
    }

    all_healthy = all(check["status"] == "healthy" for check in checks.values())
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": utcnow().isoformat(),
        "checks": checks,
    }


def _check_database(db: Session) -> Dict[str, Any]:
    start_time = time.time()

    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)[:100],
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
        }


def _check_cache(cache: CacheBackend) -> Dict[str, Any]:
    start_time = time.time()

    ping = getattr(cache, "ping", None)
    healthy = bool(ping()) if ping is not None else True
    result = {
        "status": "healthy" if healthy else "unhealthy",
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
    }
    if not healthy:
        result["error"] = "PING failed"
    return result
