"""Agent record store: the single owner of canonical agent records.

Every mutation follows the same replace-or-reject path: build the candidate
record, re-validate the whole of it, and only then swap it in.  A rejected
mutation raises and leaves the previous record untouched.  Committed
mutations are reported to the metrics sink and, by default, captured by the
snapshot manager.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from agentstate.core.metrics import (
    MetricEvent,
    MetricsSink,
    MetricType,
    NullMetricsSink,
    emit_metric,
)
from agentstate.core.state.models import (
    AgentRecord,
    AgentStatus,
    ExecutionContext,
    ExecutionState,
    StateMetrics,
    TaskState,
    TaskStats,
    utcnow,
)
from agentstate.core.state.snapshots import DEFAULT_MAX_SNAPSHOTS, SnapshotManager, StateContainer
from agentstate.core.state.validator import StateValidator
from agentstate.errors import AgentNotFoundError, StateError, ValidationError
from agentstate.utils.telemetry import ATTR_AGENT_ID, ATTR_OPERATION, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

# Mapping-valued fields merged one level deep by update_agent
_MERGED_FIELDS = frozenset({"execution_state", "config", "metrics"})


def merge_patch(current: AgentRecord, patch: Mapping[str, Any] | AgentRecord) -> dict[str, Any]:
    """Return the raw data of *current* with *patch* applied on top."""
    if isinstance(patch, AgentRecord):
        return patch.model_dump()

    data = current.model_dump()
    for key, value in patch.items():
        if key in _MERGED_FIELDS and isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return data


class AgentStore:
    """Keyed store of :class:`AgentRecord` plus the active set and task state."""

    def __init__(
        self,
        *,
        validator: StateValidator | None = None,
        metrics_sink: MetricsSink | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        snapshot_on_mutation: bool = True,
        strict_remove: bool = False,
        default_max_retries: int = 3,
        default_max_iterations: int = 10,
    ) -> None:
        self._state = StateContainer()
        self._validator = validator or StateValidator()
        self._metrics = metrics_sink or NullMetricsSink()
        self._clock = clock
        self.snapshots = SnapshotManager(
            self._state,
            max_snapshots=max_snapshots,
            clock=clock,
            validator=self._validator,
        )
        self.snapshot_on_mutation = snapshot_on_mutation
        self.strict_remove = strict_remove
        self.default_max_retries = default_max_retries
        self.default_max_iterations = default_max_iterations

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> AgentRecord | None:
        """Return a copy of the record, or ``None`` if unknown."""
        agent = self._state.agents.get(agent_id)
        return agent.model_copy(deep=True) if agent is not None else None

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._state.agents

    def get_all_agents(self) -> list[AgentRecord]:
        return [a.model_copy(deep=True) for a in self._state.agents.values()]

    def get_active_agents(self) -> list[AgentRecord]:
        """Records in the active set, in the order they became active."""
        return [
            self._state.agents[agent_id].model_copy(deep=True)
            for agent_id in self._state.active_agents
            if agent_id in self._state.agents
        ]

    def get_task_state(self, agent_id: str) -> TaskState | None:
        task_state = self._state.task_state.get(agent_id)
        return task_state.model_copy(deep=True) if task_state is not None else None

    def get_state_metrics(self, agent_id: str) -> StateMetrics:
        """Summarise status, task outcomes and history for one agent.

        Task counts come from the recorded task state when present, otherwise
        from the record's own execution state.  Unknown agents report ``IDLE``
        with zero counts.
        """
        agent = self._state.agents.get(agent_id)
        exec_state = agent.execution_state if agent is not None else None
        partitions = self._state.task_state.get(agent_id) or exec_state

        completed = len(partitions.completed_tasks) if partitions is not None else 0
        failed = len(partitions.failed_tasks) if partitions is not None else 0
        total = completed + failed

        if exec_state is not None:
            history_count = len(exec_state.history)
        elif partitions is not None:
            history_count = len(partitions.history)
        else:
            history_count = 0

        return StateMetrics(
            agent_id=agent_id,
            current_state=agent.status if agent is not None else AgentStatus.IDLE,
            history_entry_count=history_count,
            blocked_task_count=len(partitions.blocked_tasks) if partitions is not None else 0,
            error_count=exec_state.error_count if exec_state is not None else 0,
            iterations=exec_state.iterations if exec_state is not None else 0,
            task_stats=TaskStats(
                completed_count=completed,
                failed_count=failed,
                total_count=total,
                success_rate=completed / total if total > 0 else 0.0,
            ),
            timestamp=self._clock(),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_agent(self, record: AgentRecord | Mapping[str, Any]) -> AgentRecord:
        """Validate and insert a new agent, marking it active.

        A record without an execution state gets a fresh one built from the
        store's default bounds.

        Raises:
            ValidationError: The record is structurally invalid.
            StateError: An agent with the same id already exists.
        """
        with _tracer.start_as_current_span("agentstate.store.add") as span:
            span.set_attribute(ATTR_OPERATION, "add_agent")
            result = self._validator.validate_agent(record)
            if not result.is_valid:
                raise ValidationError("Invalid agent", result.errors)

            agent = (
                record.model_copy(deep=True)
                if isinstance(record, AgentRecord)
                else AgentRecord.model_validate(dict(record)).model_copy(deep=True)
            )
            span.set_attribute(ATTR_AGENT_ID, agent.id)
            if agent.id in self._state.agents:
                raise StateError(f"Agent already exists: {agent.id}")

            if agent.execution_state is None:
                agent.execution_state = ExecutionState.fresh(
                    max_retries=self.default_max_retries,
                    max_iterations=self.default_max_iterations,
                    now=self._clock(),
                )

            self._state.agents[agent.id] = agent
            self._state.active_agents[agent.id] = None
            logger.info("Added agent %s (%s)", agent.id, agent.role)

            await self._committed("add_agent", agent.id)
            return agent.model_copy(deep=True)

    async def update_agent(
        self, agent_id: str, patch: Mapping[str, Any] | AgentRecord
    ) -> AgentRecord:
        """Merge *patch* onto the record and commit if the result is valid.

        Raises:
            AgentNotFoundError: *agent_id* is unknown.
            ValidationError: The merged record is invalid; nothing changes.
        """
        with _tracer.start_as_current_span("agentstate.store.update") as span:
            span.set_attribute(ATTR_OPERATION, "update_agent")
            span.set_attribute(ATTR_AGENT_ID, agent_id)

            current = self._state.agents.get(agent_id)
            if current is None:
                raise AgentNotFoundError(agent_id)

            candidate = self._build_candidate(agent_id, merge_patch(current, patch))
            self._state.agents[agent_id] = candidate
            logger.debug("Updated agent %s", agent_id)

            await self._committed("update_agent", agent_id)
            return candidate.model_copy(deep=True)

    async def remove_agent(self, agent_id: str) -> bool:
        """Delete the agent from every map.

        Returns ``False`` for an unknown id, or raises
        :class:`AgentNotFoundError` when ``strict_remove`` is set.
        """
        if agent_id not in self._state.agents:
            if self.strict_remove:
                raise AgentNotFoundError(agent_id)
            logger.debug("remove_agent: %s not present, ignoring", agent_id)
            return False

        del self._state.agents[agent_id]
        self._state.active_agents.pop(agent_id, None)
        self._state.task_state.pop(agent_id, None)
        logger.info("Removed agent %s", agent_id)

        await self._committed("remove_agent", agent_id)
        return True

    async def set_active(self, agent_id: str, active: bool = True) -> None:
        """Add the agent to, or drop it from, the active set."""
        if agent_id not in self._state.agents:
            raise AgentNotFoundError(agent_id)
        if active:
            self._state.active_agents.setdefault(agent_id, None)
        else:
            self._state.active_agents.pop(agent_id, None)
        await self._committed("set_active", agent_id)

    async def update_execution_context(
        self, agent_id: str, context: ExecutionContext | Mapping[str, Any]
    ) -> AgentRecord:
        """Apply an execution-loop context: new status plus task state.

        Raises:
            ValidationError: The context is incomplete, or the resulting
                record is invalid.
            AgentNotFoundError: *agent_id* is unknown.
        """
        result = self._validator.validate_execution_context(context)
        if not result.is_valid:
            raise ValidationError("Invalid execution context", result.errors)
        ctx = (
            context
            if isinstance(context, ExecutionContext)
            else ExecutionContext.model_validate(dict(context))
        )

        current = self._state.agents.get(agent_id)
        if current is None:
            raise AgentNotFoundError(agent_id)

        assert ctx.state.status is not None
        assert ctx.task_state is not None
        now = self._clock()
        patch: dict[str, Any] = {"status": ctx.state.status}
        if current.execution_state is not None:
            patch["execution_state"] = {"last_active_time": now}
        candidate = self._build_candidate(agent_id, merge_patch(current, patch))

        await emit_metric(
            self._metrics,
            MetricEvent(
                type=MetricType.STATE_TRANSITION,
                timestamp=now,
                metadata={
                    "agent_id": agent_id,
                    "from_status": current.status.value,
                    "to_status": ctx.state.status.value,
                    "operation": ctx.operation,
                },
            ),
        )

        self._state.agents[agent_id] = candidate
        self._state.task_state[agent_id] = ctx.task_state.model_copy(
            deep=True, update={"agent_id": agent_id}
        )
        await self._committed("update_execution_context", agent_id)
        return candidate.model_copy(deep=True)

    def cleanup(self) -> None:
        """Drop all records, task state and snapshots."""
        self._state.clear()
        self.snapshots.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_candidate(self, agent_id: str, data: dict[str, Any]) -> AgentRecord:
        if data.get("id", agent_id) != agent_id:
            raise ValidationError("Invalid agent update", ["Agent ID is immutable"])
        try:
            candidate = AgentRecord.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid agent update",
                [f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()],
            ) from exc

        result = self._validator.validate_agent(candidate)
        if not result.is_valid:
            raise ValidationError("Invalid agent update", result.errors)
        return candidate.model_copy(deep=True)

    async def _committed(self, operation: str, agent_id: str) -> None:
        await emit_metric(
            self._metrics,
            MetricEvent(
                type=MetricType.USAGE,
                timestamp=self._clock(),
                metadata={"agent_id": agent_id, "operation": operation},
            ),
        )
        if self.snapshot_on_mutation:
            self.snapshots.create_snapshot()
