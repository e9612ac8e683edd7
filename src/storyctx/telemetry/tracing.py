"""OpenTelemetry initialization and configuration for storyctx."""

from __future__ import annotations

import logging
import os
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

_initialized = False


def init_telemetry(
    service_name: Optional[str] = None,
    otlp_endpoint: Optional[str] = None,
) -> bool:
    """Initialize OpenTelemetry tracing once per process.

    Args:
        service_name: Service name for traces (default: from OTEL_SERVICE_NAME env or "storyctx")
        otlp_endpoint: OTLP collector endpoint (default: from OTEL_EXPORTER_OTLP_ENDPOINT env or http://localhost:4317)

    Returns:
        True if this call installed the tracer provider
    """
    global _initialized
    if _initialized:
        return False

    service_name = service_name or os.getenv("OTEL_SERVICE_NAME", "storyctx")
    otlp_endpoint = otlp_endpoint or os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"
    )

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": "0.1.0",
            "deployment.environment": os.getenv("DEPLOYMENT_ENV", "development"),
        }
    )

    provider = TracerProvider(resource=resource)

    otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    # Selections are short-lived; flush every second instead of the default five
    span_processor = BatchSpanProcessor(
        otlp_exporter,
        max_queue_size=2048,
        schedule_delay_millis=1000,
        max_export_batch_size=512,
    )
    provider.add_span_processor(span_processor)

    trace.set_tracer_provider(provider)

    _initialized = True
    logger.info(
        "[storyctx] OpenTelemetry initialized: service=%s, endpoint=%s",
        service_name,
        otlp_endpoint,
    )
    return True


def shutdown_telemetry() -> None:
    """Shutdown OpenTelemetry gracefully, flushing pending spans."""
    global _initialized
    if not _initialized:
        return

    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()

    _initialized = False
    logger.info("[storyctx] OpenTelemetry shutdown complete")


__all__ = ["init_telemetry", "shutdown_telemetry"]
