"""State validator: pure structural checks run before any commit.

Every ``validate_*`` method returns a :class:`ValidationResult`; invalid
input is reported through ``errors`` and never raised.  Passing something
that is neither a model nor a mapping is a programmer error and raises
:class:`TypeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agentstate.core.state.models import (
    TASK_PARTITIONS,
    AgentRecord,
    AgentStatus,
    ExecutionContext,
    ExecutionState,
    Snapshot,
    TaskState,
    ValidationResult,
    as_utc,
    utcnow,
)

_M = TypeVar("_M", bound=BaseModel)

AGENT_FIELDS = ["id", "name", "role", "status", "execution_state"]
CONTEXT_FIELDS = ["operation", "state", "task_state"]
SNAPSHOT_FIELDS = ["timestamp", "agents", "active_agents", "task_state"]

MAX_CLOCK_SKEW = timedelta(seconds=1)


def _coerce(model: type[_M], value: Any) -> tuple[_M | None, list[str]]:
    if isinstance(value, model):
        return value, []
    if isinstance(value, Mapping):
        try:
            return model.model_validate(dict(value)), []
        except PydanticValidationError as exc:
            return None, [
                f"{'.'.join(str(p) for p in err['loc']) or model.__name__}: {err['msg']}"
                for err in exc.errors()
            ]
    msg = f"Expected {model.__name__} or mapping, got {type(value).__name__}"
    raise TypeError(msg)


def partition_errors(state: Any) -> list[str]:
    """Check the four task lists exist and share no task id."""
    errors: list[str] = []
    owners: dict[str, str] = {}
    for name in TASK_PARTITIONS:
        tasks = getattr(state, name, None)
        if not isinstance(tasks, list):
            errors.append(f"{name} must be a list")
            continue
        for task_id in tasks:
            owner = owners.setdefault(task_id, name)
            if owner != name:
                errors.append(f"task {task_id} appears in both {owner} and {name}")
    return errors


def execution_state_errors(state: ExecutionState) -> list[str]:
    errors = partition_errors(state)

    for counter in ("error_count", "retry_count", "iterations"):
        value = getattr(state, counter, None)
        if not isinstance(value, int) or value < 0:
            errors.append(f"{counter} must be a non-negative integer")

    if isinstance(state.retry_count, int) and state.retry_count > state.max_retries:
        errors.append(
            f"retry_count ({state.retry_count}) cannot exceed max_retries ({state.max_retries})"
        )
    if isinstance(state.iterations, int) and state.iterations > state.max_iterations:
        errors.append(
            f"iterations ({state.iterations}) cannot exceed max_iterations ({state.max_iterations})"
        )

    history = state.history if isinstance(state.history, list) else None
    if history is None:
        errors.append("history must be a list")
    else:
        for prev, entry in zip(history, history[1:]):
            if as_utc(entry.timestamp) < as_utc(prev.timestamp):
                errors.append(f"history out of order at action {entry.action}")
                break
    return errors


def agent_errors(agent: AgentRecord) -> list[str]:
    errors: list[str] = []
    if not agent.id:
        errors.append("Agent ID is required")
    if not agent.name:
        errors.append("Agent name is required")
    if not agent.role:
        errors.append("Agent role is required")
    if not AgentStatus.is_known(agent.status):
        errors.append(f"Invalid agent status: {agent.status!r}")
    if agent.execution_state is not None:
        errors.extend(execution_state_errors(agent.execution_state))
    return errors


class StateValidator:
    """Side-effect-free checks for records, contexts and snapshots."""

    def __init__(self, *, max_clock_skew: timedelta = MAX_CLOCK_SKEW) -> None:
        self.max_clock_skew = max_clock_skew

    def validate_agent(self, record: AgentRecord | Mapping[str, Any]) -> ValidationResult:
        """Check required fields, status, task partitions and counter bounds."""
        agent, errors = _coerce(AgentRecord, record)
        if agent is not None:
            errors = agent_errors(agent)
        return ValidationResult.from_errors(errors, validated_fields=AGENT_FIELDS)

    def validate_execution_context(
        self, context: ExecutionContext | Mapping[str, Any]
    ) -> ValidationResult:
        """Check operation name, state reference and task state are present."""
        ctx, errors = _coerce(ExecutionContext, context)
        if ctx is not None:
            if not ctx.operation:
                errors.append("Operation is required")
            if not ctx.state.id or ctx.state.status is None:
                errors.append("State ID and status are required")
            if ctx.task_state is None:
                errors.append("Task state is required")
            else:
                errors.extend(partition_errors(ctx.task_state))
        return ValidationResult.from_errors(errors, validated_fields=CONTEXT_FIELDS)

    def validate_task_state(self, state: TaskState | Mapping[str, Any]) -> ValidationResult:
        task_state, errors = _coerce(TaskState, state)
        if task_state is not None:
            errors = partition_errors(task_state)
        return ValidationResult.from_errors(errors, validated_fields=list(TASK_PARTITIONS))

    def validate_snapshot(
        self,
        snapshot: Snapshot | Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> ValidationResult:
        """Check a snapshot is internally consistent and not from the future."""
        snap, errors = _coerce(Snapshot, snapshot)
        if snap is None:
            return ValidationResult.from_errors(errors, validated_fields=SNAPSHOT_FIELDS)

        current = as_utc(now or utcnow())
        if as_utc(snap.timestamp) > current + self.max_clock_skew:
            errors.append("Snapshot timestamp is in the future")

        for key, agent in snap.agents.items():
            if agent.id != key:
                errors.append(f"agent {key}: keyed under a different id ({agent.id})")
            errors.extend(f"agent {key}: {e}" for e in agent_errors(agent))

        for agent_id in snap.active_agents:
            if agent_id not in snap.agents:
                errors.append(f"active agent {agent_id} is not in agents")

        for owner, task_state in snap.task_state.items():
            if owner not in snap.agents or task_state.agent_id not in snap.agents:
                errors.append(f"task state owner {owner} is not in agents")
            errors.extend(f"task state {owner}: {e}" for e in partition_errors(task_state))

        return ValidationResult.from_errors(errors, validated_fields=SNAPSHOT_FIELDS)
