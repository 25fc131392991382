"""Tracing helpers shared by the store, the dispatcher and the event handler.

Only ``opentelemetry-api`` is a hard dependency.  Until
:func:`configure_telemetry` installs an SDK provider, every tracer returned by
:func:`get_tracer` is a no-op, so instrumented code pays almost nothing.

Span names follow ``agentstate.<component>.<operation>``; for events the
operation is the event type value, e.g. ``agentstate.event.agent.iteration.failed``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from agentstate.config import TelemetrySettings
    from agentstate.core.events.models import AgentEvent

# ---------------------------------------------------------------------------
# Attribute keys
# ---------------------------------------------------------------------------

ATTR_AGENT_ID = "agentstate.agent.id"
ATTR_EVENT_ID = "agentstate.event.id"
ATTR_EVENT_TYPE = "agentstate.event.type"
ATTR_CASCADE_DEPTH = "agentstate.event.cascade_depth"
ATTR_HANDLER_COUNT = "agentstate.dispatch.handlers"
ATTR_HANDLER_ERRORS = "agentstate.dispatch.errors"
ATTR_OPERATION = "agentstate.store.operation"
ATTR_SNAPSHOT_VERSION = "agentstate.snapshot.version"
ATTR_SNAPSHOT_COUNT = "agentstate.snapshot.count"

_INSTRUMENTATION_NAME = "agentstate"

_SDK_HINT = "Install it with: pip install agentstate[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return the tracer for *name* (a no-op until an SDK is configured)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def event_attributes(event: AgentEvent) -> dict[str, Any]:
    """Span attributes identifying one lifecycle event."""
    return {
        ATTR_EVENT_ID: event.id,
        ATTR_EVENT_TYPE: event.type.value,
        ATTR_AGENT_ID: event.agent_id,
        ATTR_CASCADE_DEPTH: event.cascade_depth,
    }


def configure_telemetry(settings: TelemetrySettings) -> bool:
    """Install a global tracer provider built from *settings*.

    Spans go to the OTLP/gRPC collector at ``settings.otlp_endpoint`` when
    one is set, and to stdout when ``settings.console_export`` is on.

    Returns ``False`` without touching the global provider when telemetry is
    disabled, ``True`` once a provider is installed.

    Raises:
        ImportError: ``opentelemetry-sdk`` (or, for OTLP export,
            ``opentelemetry-exporter-otlp``) is not installed.
    """
    if not settings.enabled:
        return False

    sdk = _load_sdk()
    provider = sdk["TracerProvider"](
        resource=sdk["Resource"].create({"service.name": settings.service_name})
    )

    if settings.otlp_endpoint:
        exporter = _otlp_exporter(settings.otlp_endpoint)
        provider.add_span_processor(sdk["BatchSpanProcessor"](exporter))
    if settings.console_export:
        provider.add_span_processor(sdk["SimpleSpanProcessor"](sdk["ConsoleSpanExporter"]()))

    trace.set_tracer_provider(provider)
    return True


def _load_sdk() -> dict[str, Any]:
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import (  # pyright: ignore[reportMissingImports]
            BatchSpanProcessor,
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )
    except ImportError as exc:
        raise ImportError(f"opentelemetry-sdk is required for tracing. {_SDK_HINT}") from exc

    return {
        "Resource": Resource,
        "TracerProvider": TracerProvider,
        "BatchSpanProcessor": BatchSpanProcessor,
        "SimpleSpanProcessor": SimpleSpanProcessor,
        "ConsoleSpanExporter": ConsoleSpanExporter,
    }


def _otlp_exporter(endpoint: str) -> Any:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # pyright: ignore[reportMissingImports]
            OTLPSpanExporter,
        )
    except ImportError as exc:
        msg = f"opentelemetry-exporter-otlp is required for OTLP export. {_SDK_HINT}"
        raise ImportError(msg) from exc

    return OTLPSpanExporter(endpoint=endpoint)
