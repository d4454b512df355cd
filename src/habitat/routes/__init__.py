"""API route modules."""

from habitat.routes.admission import router as admission_router
from habitat.routes.diagnostics import router as diagnostics_router
from habitat.routes.health import router as health_router

__all__ = [
    "admission_router",
    "diagnostics_router",
    "health_router",
]
