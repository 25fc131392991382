"""Lifecycle event models.

Each event is an immutable value object describing something that happened
to one agent.  Events carrying a failure hold the original exception object
in ``error`` so subscribers further down a cascade see the very same
instance.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from agentstate.core.state.models import AgentRecord, AgentStatus, ValidationResult, utcnow
from agentstate.errors import ExecutionError, InvalidEventError


class AgentEventType(str, Enum):
    AGENT_CREATED = "agent.created"
    AGENT_UPDATED = "agent.updated"
    AGENT_DELETED = "agent.deleted"
    AGENT_STATUS_CHANGED = "agent.status.changed"
    AGENT_ITERATION_STARTED = "agent.iteration.started"
    AGENT_ITERATION_COMPLETED = "agent.iteration.completed"
    AGENT_ITERATION_FAILED = "agent.iteration.failed"
    AGENT_METRICS_UPDATED = "agent.metrics.updated"
    AGENT_CONFIG_UPDATED = "agent.config.updated"
    AGENT_VALIDATION_COMPLETED = "agent.validation.completed"
    AGENT_ERROR_OCCURRED = "agent.error.occurred"
    AGENT_ERROR_HANDLED = "agent.error.handled"
    AGENT_ERROR_RECOVERY_STARTED = "agent.error.recovery.started"
    AGENT_ERROR_RECOVERY_COMPLETED = "agent.error.recovery.completed"
    AGENT_ERROR_RECOVERY_FAILED = "agent.error.recovery.failed"


def _to_exception(value: Any) -> Any:
    """Accept an exception, a message string, or a ``{type, message, context}`` mapping."""
    if isinstance(value, BaseException):
        return value
    if isinstance(value, str):
        return ExecutionError(value)
    if isinstance(value, Mapping):
        context = value.get("context")
        return ExecutionError(
            str(value.get("message", "")),
            context=dict(context) if isinstance(context, Mapping) else None,
        )
    return value


ErrorValue = Annotated[BaseException, BeforeValidator(_to_exception)]


class AgentEvent(BaseModel):
    """Fields shared by every lifecycle event."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: AgentEventType
    agent_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = {}
    cascade_depth: int = 0


class AgentCreated(AgentEvent):
    type: Literal[AgentEventType.AGENT_CREATED] = AgentEventType.AGENT_CREATED
    agent: AgentRecord


class AgentUpdated(AgentEvent):
    type: Literal[AgentEventType.AGENT_UPDATED] = AgentEventType.AGENT_UPDATED
    previous_state: AgentRecord | None = None
    new_state: dict[str, Any]


class AgentDeleted(AgentEvent):
    type: Literal[AgentEventType.AGENT_DELETED] = AgentEventType.AGENT_DELETED
    final_state: AgentRecord | None = None


class StatusChanged(AgentEvent):
    type: Literal[AgentEventType.AGENT_STATUS_CHANGED] = AgentEventType.AGENT_STATUS_CHANGED
    previous_status: AgentStatus | None = None
    new_status: AgentStatus
    reason: str = ""


class IterationStarted(AgentEvent):
    type: Literal[AgentEventType.AGENT_ITERATION_STARTED] = AgentEventType.AGENT_ITERATION_STARTED
    iteration_id: str = Field(default_factory=lambda: uuid4().hex[:12])


class IterationCompleted(AgentEvent):
    type: Literal[AgentEventType.AGENT_ITERATION_COMPLETED] = (
        AgentEventType.AGENT_ITERATION_COMPLETED
    )
    iteration_id: str = ""
    result: Any = None


class IterationFailed(AgentEvent):
    type: Literal[AgentEventType.AGENT_ITERATION_FAILED] = AgentEventType.AGENT_ITERATION_FAILED
    iteration_id: str = ""
    error: ErrorValue


class MetricsUpdated(AgentEvent):
    type: Literal[AgentEventType.AGENT_METRICS_UPDATED] = AgentEventType.AGENT_METRICS_UPDATED
    previous_metrics: dict[str, Any] | None = None
    new_metrics: dict[str, Any]


class ConfigUpdated(AgentEvent):
    type: Literal[AgentEventType.AGENT_CONFIG_UPDATED] = AgentEventType.AGENT_CONFIG_UPDATED
    previous_config: dict[str, Any] = {}
    new_config: dict[str, Any]


class ValidationCompleted(AgentEvent):
    type: Literal[AgentEventType.AGENT_VALIDATION_COMPLETED] = (
        AgentEventType.AGENT_VALIDATION_COMPLETED
    )
    validation_result: ValidationResult


class ErrorOccurred(AgentEvent):
    type: Literal[AgentEventType.AGENT_ERROR_OCCURRED] = AgentEventType.AGENT_ERROR_OCCURRED
    error: ErrorValue
    context: dict[str, Any] = {}


class ErrorHandled(AgentEvent):
    type: Literal[AgentEventType.AGENT_ERROR_HANDLED] = AgentEventType.AGENT_ERROR_HANDLED
    error: ErrorValue
    task_id: str | None = None
    context: dict[str, Any] = {}


class ErrorRecoveryStarted(AgentEvent):
    type: Literal[AgentEventType.AGENT_ERROR_RECOVERY_STARTED] = (
        AgentEventType.AGENT_ERROR_RECOVERY_STARTED
    )
    error: ErrorValue
    context: dict[str, Any] = {}


class ErrorRecoveryCompleted(AgentEvent):
    type: Literal[AgentEventType.AGENT_ERROR_RECOVERY_COMPLETED] = (
        AgentEventType.AGENT_ERROR_RECOVERY_COMPLETED
    )
    error: ErrorValue
    context: dict[str, Any] = {}


class ErrorRecoveryFailed(AgentEvent):
    type: Literal[AgentEventType.AGENT_ERROR_RECOVERY_FAILED] = (
        AgentEventType.AGENT_ERROR_RECOVERY_FAILED
    )
    error: ErrorValue
    context: dict[str, Any] = {}


EVENT_MODELS: dict[AgentEventType, type[AgentEvent]] = {
    AgentEventType.AGENT_CREATED: AgentCreated,
    AgentEventType.AGENT_UPDATED: AgentUpdated,
    AgentEventType.AGENT_DELETED: AgentDeleted,
    AgentEventType.AGENT_STATUS_CHANGED: StatusChanged,
    AgentEventType.AGENT_ITERATION_STARTED: IterationStarted,
    AgentEventType.AGENT_ITERATION_COMPLETED: IterationCompleted,
    AgentEventType.AGENT_ITERATION_FAILED: IterationFailed,
    AgentEventType.AGENT_METRICS_UPDATED: MetricsUpdated,
    AgentEventType.AGENT_CONFIG_UPDATED: ConfigUpdated,
    AgentEventType.AGENT_VALIDATION_COMPLETED: ValidationCompleted,
    AgentEventType.AGENT_ERROR_OCCURRED: ErrorOccurred,
    AgentEventType.AGENT_ERROR_HANDLED: ErrorHandled,
    AgentEventType.AGENT_ERROR_RECOVERY_STARTED: ErrorRecoveryStarted,
    AgentEventType.AGENT_ERROR_RECOVERY_COMPLETED: ErrorRecoveryCompleted,
    AgentEventType.AGENT_ERROR_RECOVERY_FAILED: ErrorRecoveryFailed,
}


def parse_event(data: Mapping[str, Any]) -> AgentEvent:
    """Build the concrete event model named by ``data["type"]``.

    Raises:
        InvalidEventError: The type is missing or unknown, or the payload
            does not match the event's schema.
    """
    raw_type = data.get("type")
    if not raw_type:
        raise InvalidEventError("Invalid event", ["type is required"])
    try:
        event_type = AgentEventType(raw_type)
    except ValueError as exc:
        raise InvalidEventError("Invalid event", [f"unknown event type: {raw_type}"]) from exc

    try:
        return EVENT_MODELS[event_type].model_validate({**data, "type": event_type})
    except PydanticValidationError as exc:
        raise InvalidEventError(
            f"Invalid {event_type.value} event",
            [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()],
        ) from exc
