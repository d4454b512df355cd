"""Admission webhook FastAPI application."""

import logging

from fastapi import FastAPI

from habitat import __version__
from habitat.core.config import get_settings
from habitat.core.telemetry import setup_telemetry
from habitat.routes import admission_router, health_router

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_webhook_app() -> FastAPI:
    """Create the app serving ``/validate``, ``/mutate`` and ``/health``."""
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} Admission",
        description="Validating and mutating admission webhook for habitat Jobs",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    setup_telemetry(app, settings, component="admission")

    app.include_router(health_router)
    app.include_router(admission_router)

    return app


# Create app instance
app = create_webhook_app()
