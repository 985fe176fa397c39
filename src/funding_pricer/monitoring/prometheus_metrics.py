"""
Prometheus metrics for the trust boundary and the pricing sync.

Metrics exported:
- funding_pricer_requests_total: Total HTTP requests
- funding_pricer_request_duration_seconds: Request duration histogram
- funding_pricer_signature_checks_total: Launch HMAC verifications by result
- funding_pricer_replay_rejections_total: Launch requests outside the window
- funding_pricer_token_refresh_total: Token refreshes by result
- funding_pricer_price_updates_total: Catalog price pushes by result
- funding_pricer_sync_total: sync_and_price runs by outcome
"""

import re
import time
from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    REGISTRY,
)
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)


class PrometheusMetrics:
    """Prometheus metrics collector for Funding Pricer."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Prometheus registry (default global registry if not provided)
        """
        self.registry = registry or REGISTRY

        self.requests_total = Counter(
            "funding_pricer_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry,
        )

        self.request_duration = Histogram(
            "funding_pricer_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

        self.signature_checks = Counter(
            "funding_pricer_signature_checks_total",
            "Launch request HMAC verifications",
            ["result"],
            registry=self.registry,
        )

        self.replay_rejections = Counter(
            "funding_pricer_replay_rejections_total",
            "Launch requests rejected by the replay window",
            registry=self.registry,
        )

        self.token_refreshes = Counter(
            "funding_pricer_token_refresh_total",
            "OAuth token refreshes",
            ["result"],
            registry=self.registry,
        )

        self.price_updates = Counter(
            "funding_pricer_price_updates_total",
            "Catalog price updates",
            ["result"],
            registry=self.registry,
        )

        self.syncs = Counter(
            "funding_pricer_sync_total",
            "Funding product sync runs",
            ["outcome"],
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def track_request(self, method: str, endpoint: str, status_code: int, duration: float):
        self.requests_total.labels(
            method=method,
            endpoint=endpoint,
            status_code=status_code,
        ).inc()

        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def track_signature(self, valid: bool):
        self.signature_checks.labels(result="valid" if valid else "invalid").inc()

    def track_replay_rejection(self):
        self.replay_rejections.inc()

    def track_token_refresh(self, success: bool):
        self.token_refreshes.labels(result="success" if success else "failed").inc()

    def track_price_update(self, success: bool):
        self.price_updates.labels(result="success" if success else "failed").inc()

    def track_sync(self, outcome: str):
        """
        Track a sync run.

        Args:
            outcome: disabled, reauthorization_required, unchanged, updated
                or update_failed
        """
        self.syncs.labels(outcome=outcome).inc()


_metrics: Optional[PrometheusMetrics] = None


def get_metrics() -> PrometheusMetrics:
    """Get global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = PrometheusMetrics()
    return _metrics


class MetricsMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for automatic request metrics collection."""

    def __init__(self, app):
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            self.metrics.track_request(
                method=request.method,
                endpoint=self._normalize_endpoint(request.url.path),
                status_code=status_code,
                duration=time.time() - start_time,
            )

    def _normalize_endpoint(self, path: str) -> str:
        """Replace UUIDs and numeric ids to keep label cardinality bounded."""
        path = re.sub(
            r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
            '{uuid}',
            path,
            flags=re.IGNORECASE
        )
        return re.sub(r'/\d+', '/{id}', path)
