"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings shared by the admission webhook and the controller.

    Loaded from ``HABITAT_*`` environment variables; CLI flags override the
    server fields at process start.
    """

    model_config = SettingsConfigDict(
        env_prefix="HABITAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "Habitat Job Controller"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8443
    tls_cert_path: Path | None = None
    tls_key_path: Path | None = None

    # Controller
    namespace: str | None = None  # None watches every namespace
    workers: int = 4
    requeue_seconds: float = 300.0  # Fixed delay after a failed reconcile
    watch_timeout_seconds: int = 300  # Server-side watch timeout before reconnecting
    reporter: str = "habitat-controller"

    # Admission
    require_tasks: bool = True
    template_dry_run: bool = True

    # OpenTelemetry
    otel_enabled: bool = True
    otel_service_name: str = "habitat"
    otel_exporter_endpoint: str = "http://localhost:4317"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
