"""Controller process: FastAPI app whose lifespan runs the Job controller."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from habitat import __version__
from habitat.core.config import get_settings
from habitat.core.telemetry import setup_telemetry
from habitat.routes import diagnostics_router, health_router
from habitat.services.controller import get_job_controller

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the controller on startup and drain it on shutdown.

    A missing CRD raises ControllerStartupError here, which aborts server
    startup and exits the process.
    """
    settings = get_settings()
    controller = get_job_controller()

    logger.info(f"Starting {settings.app_name} in {settings.environment} mode")
    await controller.start()

    yield

    logger.info("Shutting down...")
    await controller.stop()


def create_app() -> FastAPI:
    """Create and configure the controller application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Reconciles habitat Jobs into Pods",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    setup_telemetry(app, settings, component="controller")

    app.include_router(health_router)
    app.include_router(diagnostics_router)

    return app


# Create app instance
app = create_app()
