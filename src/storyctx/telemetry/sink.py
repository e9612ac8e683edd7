"""Telemetry sink - Fire-and-forget event emission.

Selection and compression report named events with flat attributes. A sink
failure is logged and dropped; it never affects the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, runtime_checkable

from opentelemetry import trace

logger = logging.getLogger(__name__)


@runtime_checkable
class TelemetrySink(Protocol):
    """Receiver for named telemetry events."""

    def emit(self, name: str, attributes: dict[str, Any]) -> None: ...


class SpanEventSink:
    """Attach events to the current OpenTelemetry span.

    With no active recording span the event only reaches the debug log.
    """

    def emit(self, name: str, attributes: dict[str, Any]) -> None:
        span = trace.get_current_span()
        if span.is_recording():
            span.add_event(name, attributes=_span_safe(attributes))
        logger.debug("[storyctx] telemetry %s %s", name, attributes)


class RecordingSink:
    """Keep emitted events in memory, newest last."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, name: str, attributes: dict[str, Any]) -> None:
        self.events.append((name, dict(attributes)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def _span_safe(attributes: dict[str, Any]) -> dict[str, Any]:
    # Span attributes accept only primitives and homogeneous sequences of them
    safe: dict[str, Any] = {}
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (str, bool, int, float)):
            safe[key] = value
        elif isinstance(value, (list, tuple)):
            safe[key] = [str(v) for v in value]
        else:
            safe[key] = str(value)
    return safe


def safe_emit(sink: Optional[TelemetrySink], name: str, attributes: dict[str, Any]) -> None:
    """Emit an event, swallowing and logging any sink failure."""
    if sink is None:
        return
    try:
        sink.emit(name, attributes)
    except Exception as e:
        logger.warning("[storyctx] Telemetry sink failed for %s: %s", name, e)


__all__ = ["RecordingSink", "SpanEventSink", "TelemetrySink", "safe_emit"]
