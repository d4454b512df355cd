"""Core modules for configuration and telemetry."""

from habitat.core.config import Settings, get_settings
from habitat.core.telemetry import get_tracer, setup_telemetry

__all__ = ["Settings", "get_settings", "get_tracer", "setup_telemetry"]
