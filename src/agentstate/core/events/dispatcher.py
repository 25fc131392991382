"""EventDispatcher: live fan-out of lifecycle events to subscribers."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from agentstate.core.events.models import AgentEvent, AgentEventType
from agentstate.utils.telemetry import (
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_ERRORS,
    event_attributes,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

EventHandler = Callable[[AgentEvent], Awaitable[object] | object]


@dataclass
class DispatchResult:
    """What happened when one event was emitted."""

    event: AgentEvent
    handled: int = 0
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventDispatcher:
    """Maintains a type-to-handlers map and delivers events in order.

    Usage::

        dispatcher = EventDispatcher()
        dispatcher.on(AgentEventType.AGENT_ERROR_OCCURRED, alert)
        result = await dispatcher.emit(event)   # awaits every handler in turn

    A failing handler is logged and recorded on the :class:`DispatchResult`;
    the remaining handlers still run.  Nothing is persisted or replayed.
    """

    def __init__(self) -> None:
        self._handlers: dict[AgentEventType, list[EventHandler]] = {}

    def on(self, event_type: AgentEventType | str, handler: EventHandler) -> None:
        """Subscribe *handler*; registering the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(AgentEventType(event_type), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: AgentEventType | str, handler: EventHandler) -> None:
        """Unsubscribe *handler* (no-op if it was never registered)."""
        key = AgentEventType(event_type)
        handlers = self._handlers.get(key)
        if handlers is None or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[key]

    def handlers(self, event_type: AgentEventType | str) -> list[EventHandler]:
        return list(self._handlers.get(AgentEventType(event_type), ()))

    async def emit(self, event: AgentEvent) -> DispatchResult:
        """Await each handler for ``event.type`` sequentially."""
        result = DispatchResult(event=event)
        handlers = self.handlers(event.type)
        if not handlers:
            logger.debug("No handlers registered for %s", event.type.value)
            return result

        with _tracer.start_as_current_span(
            f"agentstate.dispatch.{event.type.value}", attributes=event_attributes(event)
        ) as span:
            span.set_attribute(ATTR_HANDLER_COUNT, len(handlers))

            for handler in handlers:
                try:
                    outcome = handler(event)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as exc:
                    logger.error(
                        "Handler %s failed on %s (event %s, agent %s): %s",
                        _handler_name(handler),
                        event.type.value,
                        event.id,
                        event.agent_id,
                        exc,
                    )
                    result.errors.append(exc)
                else:
                    result.handled += 1

            span.set_attribute(ATTR_HANDLER_ERRORS, len(result.errors))
        return result
