"""Pure event-to-record reducer.

``reduce(record, event, now=...)`` derives the next :class:`AgentRecord`
from the current one and a lifecycle event.  It never mutates its input,
never talks to the store, and appends at most one history entry per event.
Creation, deletion and whole-record updates are store operations and are
handled by :class:`~agentstate.core.events.handler.AgentEventHandler`.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from agentstate.core.events.models import (
    AgentCreated,
    AgentEvent,
    AgentEventType,
    ConfigUpdated,
    ErrorHandled,
    ErrorOccurred,
    ErrorRecoveryCompleted,
    ErrorRecoveryFailed,
    ErrorRecoveryStarted,
    IterationCompleted,
    IterationFailed,
    IterationStarted,
    MetricsUpdated,
    StatusChanged,
    ValidationCompleted,
)
from agentstate.core.state.models import (
    AgentRecord,
    ErrorInfo,
    ExecutionState,
    StateCategory,
    StateHistoryEntry,
)


def error_details(error: BaseException) -> dict[str, Any]:
    return {"type": type(error).__name__, "message": str(error)}


def append_history(
    state: ExecutionState,
    action: str,
    category: StateCategory,
    details: dict[str, Any],
    *,
    now: datetime,
) -> StateHistoryEntry:
    """Append one entry, never earlier than the entry before it."""
    timestamp = now
    if state.history and state.history[-1].timestamp > timestamp:
        timestamp = state.history[-1].timestamp
    entry = StateHistoryEntry(
        timestamp=timestamp, action=action, category=category, details=details
    )
    state.history.append(entry)
    return entry


def initial_record(
    event: AgentCreated,
    *,
    now: datetime,
    max_retries: int = 3,
    max_iterations: int = 10,
) -> AgentRecord:
    """Build the record inserted for an ``AgentCreated`` event.

    The record always starts from a fresh execution state; an execution
    state supplied on ``event.agent`` only contributes its bounds.
    """
    record = event.agent.model_copy(deep=True)
    supplied = record.execution_state
    record.execution_state = ExecutionState.fresh(
        max_retries=supplied.max_retries if supplied is not None else max_retries,
        max_iterations=supplied.max_iterations if supplied is not None else max_iterations,
        now=now,
    )
    append_history(
        record.execution_state,
        "AGENT_CREATED",
        StateCategory.CORE,
        {"agent_id": record.id, "name": record.name, "role": record.role},
        now=now,
    )
    return record


# ---------------------------------------------------------------------------
# Per-event transitions (mutate the already-copied record in place)
# ---------------------------------------------------------------------------

_Transition = Callable[[AgentRecord, ExecutionState, Any, datetime], None]


def _status_changed(
    record: AgentRecord, state: ExecutionState, event: StatusChanged, now: datetime
) -> None:
    previous = event.previous_status or record.status
    record.status = event.new_status
    append_history(
        state,
        "STATUS_CHANGED",
        StateCategory.CORE,
        {
            "previous_status": previous.value,
            "new_status": event.new_status.value,
            "reason": event.reason,
        },
        now=now,
    )


def _iteration_started(
    record: AgentRecord, state: ExecutionState, event: IterationStarted, now: datetime
) -> None:
    state.iterations += 1
    state.thinking = True
    append_history(
        state,
        "ITERATION_STARTED",
        StateCategory.CORE,
        {"iteration_id": event.iteration_id, "iteration_count": state.iterations},
        now=now,
    )


def _iteration_completed(
    record: AgentRecord, state: ExecutionState, event: IterationCompleted, now: datetime
) -> None:
    state.thinking = False
    append_history(
        state,
        "ITERATION_COMPLETED",
        StateCategory.CORE,
        {"iteration_id": event.iteration_id, "result": event.result},
        now=now,
    )


def _iteration_failed(
    record: AgentRecord, state: ExecutionState, event: IterationFailed, now: datetime
) -> None:
    state.thinking = False
    state.error_count += 1
    state.last_error = ErrorInfo.from_exception(event.error)
    append_history(
        state,
        "ITERATION_FAILED",
        StateCategory.ERROR,
        {"iteration_id": event.iteration_id, "error": error_details(event.error)},
        now=now,
    )


def _metrics_updated(
    record: AgentRecord, state: ExecutionState, event: MetricsUpdated, now: datetime
) -> None:
    record.metrics = dict(event.new_metrics)
    append_history(
        state,
        "METRICS_UPDATED",
        StateCategory.METRICS,
        {"previous_metrics": event.previous_metrics, "new_metrics": event.new_metrics},
        now=now,
    )


def _config_updated(
    record: AgentRecord, state: ExecutionState, event: ConfigUpdated, now: datetime
) -> None:
    previous = event.previous_config or dict(record.config)
    record.config = {**record.config, **event.new_config}
    append_history(
        state,
        "CONFIG_UPDATED",
        StateCategory.CORE,
        {"previous_config": previous, "new_config": event.new_config},
        now=now,
    )


def _validation_completed(
    record: AgentRecord, state: ExecutionState, event: ValidationCompleted, now: datetime
) -> None:
    if event.validation_result.is_valid:
        return
    append_history(
        state,
        "VALIDATION_FAILED",
        StateCategory.VALIDATION,
        {
            "errors": list(event.validation_result.errors),
            "warnings": list(event.validation_result.warnings),
        },
        now=now,
    )


def _error_occurred(
    record: AgentRecord, state: ExecutionState, event: ErrorOccurred, now: datetime
) -> None:
    state.error_count += 1
    state.last_error = ErrorInfo.from_exception(event.error)
    append_history(
        state,
        "ERROR_OCCURRED",
        StateCategory.ERROR,
        {"error": error_details(event.error), "context": dict(event.context)},
        now=now,
    )


def _error_handled(
    record: AgentRecord, state: ExecutionState, event: ErrorHandled, now: datetime
) -> None:
    state.last_error = None
    append_history(
        state,
        "ERROR_HANDLED",
        StateCategory.ERROR,
        {
            "error": error_details(event.error),
            "task_id": event.task_id,
            "context": dict(event.context),
        },
        now=now,
    )


def _recovery_started(
    record: AgentRecord, state: ExecutionState, event: ErrorRecoveryStarted, now: datetime
) -> None:
    append_history(
        state,
        "ERROR_RECOVERY_STARTED",
        StateCategory.ERROR,
        {"error": error_details(event.error), "context": dict(event.context)},
        now=now,
    )


def _recovery_completed(
    record: AgentRecord, state: ExecutionState, event: ErrorRecoveryCompleted, now: datetime
) -> None:
    state.last_error = None
    append_history(
        state,
        "ERROR_RECOVERY_COMPLETED",
        StateCategory.ERROR,
        {"error": error_details(event.error), "context": dict(event.context)},
        now=now,
    )


def _recovery_failed(
    record: AgentRecord, state: ExecutionState, event: ErrorRecoveryFailed, now: datetime
) -> None:
    state.last_error = ErrorInfo.from_exception(event.error)
    append_history(
        state,
        "ERROR_RECOVERY_FAILED",
        StateCategory.ERROR,
        {"error": error_details(event.error), "context": dict(event.context)},
        now=now,
    )


_TRANSITIONS: dict[AgentEventType, _Transition] = {
    AgentEventType.AGENT_STATUS_CHANGED: _status_changed,
    AgentEventType.AGENT_ITERATION_STARTED: _iteration_started,
    AgentEventType.AGENT_ITERATION_COMPLETED: _iteration_completed,
    AgentEventType.AGENT_ITERATION_FAILED: _iteration_failed,
    AgentEventType.AGENT_METRICS_UPDATED: _metrics_updated,
    AgentEventType.AGENT_CONFIG_UPDATED: _config_updated,
    AgentEventType.AGENT_VALIDATION_COMPLETED: _validation_completed,
    AgentEventType.AGENT_ERROR_OCCURRED: _error_occurred,
    AgentEventType.AGENT_ERROR_HANDLED: _error_handled,
    AgentEventType.AGENT_ERROR_RECOVERY_STARTED: _recovery_started,
    AgentEventType.AGENT_ERROR_RECOVERY_COMPLETED: _recovery_completed,
    AgentEventType.AGENT_ERROR_RECOVERY_FAILED: _recovery_failed,
}


def reduce(record: AgentRecord, event: AgentEvent, *, now: datetime) -> AgentRecord:
    """Return the record that results from applying *event* to *record*.

    Raises:
        ValueError: *event* is a store-level event (created, updated,
            deleted) that has no record transition.
    """
    transition = _TRANSITIONS.get(event.type)
    if transition is None:
        msg = f"No record transition for {event.type.value}"
        raise ValueError(msg)

    nxt = record.model_copy(deep=True)
    if nxt.execution_state is None:
        nxt.execution_state = ExecutionState.fresh(now=now)
    transition(nxt, nxt.execution_state, event, now)
    nxt.execution_state.last_active_time = now
    return nxt
