"""Liveness endpoint shared by the webhook and controller processes."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from habitat import __version__
from habitat.core.config import Settings, get_settings

SettingsDep = Annotated[Settings, Depends(get_settings)]

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    version: str
    environment: str


@router.get("/health", response_model=HealthResponse)
async def health_check(settings: SettingsDep) -> HealthResponse:
    """Basic liveness check polled by Kubernetes.

    Unauthenticated and independent of the cluster; it only confirms the
    process is serving requests.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        environment=settings.environment,
    )
