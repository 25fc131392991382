"""Metrics sink: the narrow interface the core reports mutations through.

The core never aggregates metrics itself.  Every committed mutation is
forwarded to a :class:`MetricsSink` as a :class:`MetricEvent`; the sink owns
whatever rollup or export happens next.  Sink failures are logged and never
propagate into the core.
"""

from __future__ import annotations

import inspect
import logging
from collections import deque
from collections.abc import Awaitable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from agentstate.core.state.models import utcnow

logger = logging.getLogger(__name__)


class MetricType(str, Enum):
    USAGE = "usage"
    STATE_TRANSITION = "state_transition"
    SYSTEM_HEALTH = "system_health"
    ERROR = "error"


class MetricEvent(BaseModel):
    """A single metric observation handed to the sink."""

    domain: str = "agent"
    type: MetricType
    value: float = 1.0
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = {}


@runtime_checkable
class MetricsSink(Protocol):
    """External collaborator receiving one event per committed mutation."""

    def track_metric(self, event: MetricEvent) -> Awaitable[None] | None: ...


class NullMetricsSink:
    """Discards every event."""

    def track_metric(self, event: MetricEvent) -> None:
        return None


class InMemoryMetricsSink:
    """Keeps the most recent *maxlen* events in a ring buffer."""

    def __init__(self, maxlen: int = 1000) -> None:
        self._events: deque[MetricEvent] = deque(maxlen=maxlen)

    @property
    def events(self) -> list[MetricEvent]:
        return list(self._events)

    def track_metric(self, event: MetricEvent) -> None:
        self._events.append(event)

    def by_type(self, metric_type: MetricType) -> list[MetricEvent]:
        return [e for e in self._events if e.type == metric_type]

    def clear(self) -> None:
        self._events.clear()


async def emit_metric(sink: MetricsSink, event: MetricEvent) -> None:
    """Forward *event* to *sink*, awaiting it if needed and logging failures."""
    try:
        result = sink.track_metric(event)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning("Metrics sink failed on %s event", event.type.value, exc_info=True)
