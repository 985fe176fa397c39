"""
FastAPI application entry point for Funding Pricer.
"""

# Load environment variables FIRST before any other imports
from pathlib import Path
from dotenv import load_dotenv

current_file = Path(__file__)
project_root = current_file.parent.parent.parent.parent  # src/funding_pricer/api/main.py -> root
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from funding_pricer import __version__
from funding_pricer.api.middleware.error_handler import ErrorHandlerMiddleware
from funding_pricer.api.routes import funding_products, health, launch, oauth
from funding_pricer.monitoring import MetricsMiddleware, get_metrics, setup_sentry
from funding_pricer.utils.config import get_config
from funding_pricer.utils.exceptions import ConfigurationError
from funding_pricer.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging()
    settings = get_config()
    logger.info(f"Starting Funding Pricer API ({settings.environment})...")

    try:
        settings.validate_required()
    except ConfigurationError as e:
        if settings.is_production:
            raise
        logger.warning(f"Running with incomplete configuration: {e}")

    setup_sentry(
        settings.sentry_dsn,
        environment=settings.environment,
        release=__version__,
    )

    get_metrics()
    logger.info("API started successfully")

    yield

    logger.info("Shutting down Funding Pricer API...")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    settings = get_config()

    app = FastAPI(
        title="Funding Pricer API",
        description="Funding-style tier pricing for Cafe24 storefronts",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Order matters: metrics wrap the error handler so they record mapped status codes
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(launch.router, prefix="/api/auth", tags=["Launch"])
    app.include_router(oauth.router, prefix="/api/oauth", tags=["OAuth"])
    app.include_router(
        funding_products.router,
        prefix="/api/funding-products",
        tags=["Funding Products"],
    )
    app.include_router(health.router, prefix="/health", tags=["Health"])

    @app.get("/metrics", tags=["Monitoring"])
    def metrics():
        """Prometheus metrics endpoint."""
        return PlainTextResponse(
            generate_latest(get_metrics().registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "funding_pricer.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", 8000)),
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
