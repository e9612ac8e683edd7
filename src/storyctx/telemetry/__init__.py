"""Telemetry module - Observability for the context engine.

This module provides:
- init_telemetry: Initialize OpenTelemetry tracing
- shutdown_telemetry: Graceful shutdown
- TelemetrySink / SpanEventSink / safe_emit: Fire-and-forget event emission
"""

from .sink import RecordingSink, SpanEventSink, TelemetrySink, safe_emit
from .tracing import init_telemetry, shutdown_telemetry

__all__ = [
    "init_telemetry",
    "shutdown_telemetry",
    "TelemetrySink",
    "SpanEventSink",
    "RecordingSink",
    "safe_emit",
]
