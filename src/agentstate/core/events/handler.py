"""AgentEventHandler: applies lifecycle events to the agent store.

For every event the handler derives the next record with the pure
:func:`~agentstate.core.events.reducer.reduce` and commits it through
:meth:`AgentStore.update_agent`, which re-validates the whole record.
Failure-class events additionally re-emit one derived ``ErrorOccurred``
so error subscribers are notified separately from the state commit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from agentstate.core.events.dispatcher import EventDispatcher
from agentstate.core.events.models import (
    AgentCreated,
    AgentDeleted,
    AgentEvent,
    AgentEventType,
    AgentUpdated,
    ErrorOccurred,
    ValidationCompleted,
)
from agentstate.core.events.reducer import initial_record, reduce
from agentstate.core.metrics import (
    MetricEvent,
    MetricsSink,
    MetricType,
    NullMetricsSink,
    emit_metric,
)
from agentstate.core.state.models import utcnow
from agentstate.core.state.store import AgentStore
from agentstate.errors import (
    AgentNotFoundError,
    InvalidEventError,
    StateError,
    ValidationError,
)
from agentstate.utils.telemetry import event_attributes, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

MAX_CASCADE_DEPTH = 1

_CASCADE_OPERATIONS: dict[AgentEventType, str] = {
    AgentEventType.AGENT_ITERATION_FAILED: "iteration",
    AgentEventType.AGENT_ERROR_RECOVERY_FAILED: "error_recovery",
    AgentEventType.AGENT_VALIDATION_COMPLETED: "validation",
}


class AgentEventHandler:
    """Subscribes to every :class:`AgentEventType` and keeps the store in step.

    Args:
        store: The store that owns the agent records.
        dispatcher: Where derived ``ErrorOccurred`` events are emitted.
        clock: Source of ``now`` for history entries.
        max_retries: Bound for execution states created from ``AgentCreated``.
        max_iterations: Bound for execution states created from ``AgentCreated``.
        max_cascade_depth: Events at or beyond this depth never cascade.
        metrics_sink: Receives one ``ERROR`` metric per rejected event.
    """

    def __init__(
        self,
        store: AgentStore,
        dispatcher: EventDispatcher,
        *,
        clock: Callable[[], datetime] = utcnow,
        max_retries: int = 3,
        max_iterations: int = 10,
        max_cascade_depth: int = MAX_CASCADE_DEPTH,
        metrics_sink: MetricsSink | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._clock = clock
        self._max_retries = max_retries
        self._max_iterations = max_iterations
        self._max_cascade_depth = max_cascade_depth
        self._metrics = metrics_sink or NullMetricsSink()
        self._attached: list[EventDispatcher] = []

    def attach(self, dispatcher: EventDispatcher | None = None) -> None:
        target = dispatcher or self._dispatcher
        for event_type in AgentEventType:
            target.on(event_type, self.handle)
        if target not in self._attached:
            self._attached.append(target)

    def detach(self, dispatcher: EventDispatcher | None = None) -> None:
        target = dispatcher or self._dispatcher
        for event_type in AgentEventType:
            target.off(event_type, self.handle)
        if target in self._attached:
            self._attached.remove(target)

    @property
    def attached(self) -> bool:
        return bool(self._attached)

    async def handle(self, event: AgentEvent) -> None:
        """Apply *event* to the store, then cascade if it reports a failure.

        Raises:
            InvalidEventError: ``agent_id`` or ``type`` is missing, or an
                ``AgentCreated`` carries a record with a different id.
            AgentNotFoundError: The event targets an unknown agent.
            StateError: ``AgentCreated`` for an id that already exists.
            ValidationError: The derived record was rejected on commit.
        """
        if not getattr(event, "agent_id", None) or getattr(event, "type", None) is None:
            raise InvalidEventError("Invalid event", ["agent_id and type are required"])
        if isinstance(event, AgentCreated) and event.agent.id != event.agent_id:
            raise InvalidEventError(
                "Invalid event",
                [f"agent.id {event.agent.id!r} does not match agent_id {event.agent_id!r}"],
            )

        with _tracer.start_as_current_span(
            f"agentstate.event.{event.type.value}", attributes=event_attributes(event)
        ):
            try:
                await self._apply(event)
            except AgentNotFoundError:
                logger.error(
                    "Dropping %s for unknown agent %s", event.type.value, event.agent_id
                )
                await self._rejected(event, "agent_not_found")
                raise
            except (StateError, ValidationError) as exc:
                logger.error(
                    "Rejected %s for agent %s: %s", event.type.value, event.agent_id, exc
                )
                await self._rejected(event, type(exc).__name__)
                raise

        await self._cascade(event)

    async def _apply(self, event: AgentEvent) -> None:
        if isinstance(event, AgentCreated):
            record = initial_record(
                event,
                now=self._clock(),
                max_retries=self._max_retries,
                max_iterations=self._max_iterations,
            )
            await self._store.add_agent(record)
            return

        if isinstance(event, AgentDeleted):
            if not self._store.has_agent(event.agent_id):
                raise AgentNotFoundError(event.agent_id)
            await self._store.remove_agent(event.agent_id)
            return

        current = self._store.get_agent(event.agent_id)
        if current is None:
            raise AgentNotFoundError(event.agent_id)

        if isinstance(event, AgentUpdated):
            await self._store.update_agent(event.agent_id, event.new_state)
            return

        nxt = reduce(current, event, now=self._clock())
        await self._store.update_agent(event.agent_id, nxt)

    async def _rejected(self, event: AgentEvent, reason: str) -> None:
        await emit_metric(
            self._metrics,
            MetricEvent(
                type=MetricType.ERROR,
                timestamp=self._clock(),
                metadata={
                    "agent_id": event.agent_id,
                    "event_type": event.type.value,
                    "event_id": event.id,
                    "reason": reason,
                },
            ),
        )

    async def _cascade(self, event: AgentEvent) -> None:
        operation = _CASCADE_OPERATIONS.get(event.type)
        if operation is None:
            return
        if event.cascade_depth >= self._max_cascade_depth:
            logger.debug(
                "Not cascading %s at depth %d", event.type.value, event.cascade_depth
            )
            return

        context: dict[str, Any] = {"operation": operation, "source_event": event.id}
        if isinstance(event, ValidationCompleted):
            if event.validation_result.is_valid:
                return
            error: BaseException = ValidationError(
                "Agent validation failed", event.validation_result.errors
            )
            context["errors"] = list(event.validation_result.errors)
        else:
            error = event.error  # type: ignore[attr-defined]
            iteration_id = getattr(event, "iteration_id", None)
            if iteration_id:
                context["iteration_id"] = iteration_id
            recovery_context = getattr(event, "context", None)
            if recovery_context:
                context.update({k: v for k, v in recovery_context.items() if k != "operation"})

        derived = ErrorOccurred(
            agent_id=event.agent_id,
            error=error,
            context=context,
            cascade_depth=event.cascade_depth + 1,
            metadata={"cascaded_from": event.type.value},
        )
        logger.debug("Cascading %s into %s", event.type.value, derived.type.value)
        await self._dispatcher.emit(derived)
