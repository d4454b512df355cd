"""OpenTelemetry configuration for tracing webhook requests and reconciles."""

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

if TYPE_CHECKING:
    from fastapi import FastAPI

from habitat import __version__
from habitat.core.config import Settings

logger = logging.getLogger(__name__)


def setup_telemetry(app: "FastAPI", settings: Settings, component: str) -> None:
    """Configure OpenTelemetry tracing for one of the habitat processes.

    Args:
        app: FastAPI application instance
        settings: Application settings
        component: Process name appended to the service name ("admission", "controller")
    """
    if not settings.otel_enabled:
        logger.info("OpenTelemetry disabled")
        return

    service_name = f"{settings.otel_service_name}-{component}"
    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    if settings.environment == "development":
        # Console spans only when debugging locally
        if settings.debug:
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        try:
            otlp_exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        except Exception as e:
            logger.warning(f"Failed to configure OTLP exporter: {e}")

    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)

    logger.info(
        f"OpenTelemetry configured: service={service_name}, "
        f"environment={settings.environment}"
    )


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer for the given module name."""
    return trace.get_tracer(name)
