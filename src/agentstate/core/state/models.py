"""Agent state data models.

These models define what the store holds per agent: identity, lifecycle
status, the embedded execution state (counters, task partitions, history),
plus the point-in-time snapshot and validation result shapes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(ts: datetime) -> datetime:
    """Read a naive timestamp as UTC; aware ones pass through."""
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


# Naive values (e.g. from hand-written snapshot files) are pinned to UTC so
# they order against clock-produced timestamps.
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class AgentStatus(str, Enum):
    """Lifecycle status of an agent."""

    INITIAL = "INITIAL"
    IDLE = "IDLE"
    BUSY = "BUSY"
    ERROR = "ERROR"
    THINKING = "THINKING"
    THINKING_END = "THINKING_END"
    THINKING_ERROR = "THINKING_ERROR"
    THOUGHT = "THOUGHT"
    EXECUTING_ACTION = "EXECUTING_ACTION"
    USING_TOOL = "USING_TOOL"
    USING_TOOL_END = "USING_TOOL_END"
    USING_TOOL_ERROR = "USING_TOOL_ERROR"
    TOOL_DOES_NOT_EXIST = "TOOL_DOES_NOT_EXIST"
    OBSERVATION = "OBSERVATION"
    FINAL_ANSWER = "FINAL_ANSWER"
    TASK_COMPLETED = "TASK_COMPLETED"
    MAX_ITERATIONS_ERROR = "MAX_ITERATIONS_ERROR"
    ISSUES_PARSING_LLM_OUTPUT = "ISSUES_PARSING_LLM_OUTPUT"
    SELF_QUESTION = "SELF_QUESTION"
    ITERATING = "ITERATING"
    ITERATION_START = "ITERATION_START"
    ITERATION_END = "ITERATION_END"
    ITERATION_COMPLETE = "ITERATION_COMPLETE"
    MAX_ITERATIONS_EXCEEDED = "MAX_ITERATIONS_EXCEEDED"
    AGENTIC_LOOP_ERROR = "AGENTIC_LOOP_ERROR"
    WEIRD_LLM_OUTPUT = "WEIRD_LLM_OUTPUT"

    @classmethod
    def is_known(cls, value: object) -> bool:
        try:
            cls(value)
        except ValueError:
            return False
        return True


class StateCategory(str, Enum):
    """Category tag attached to each history entry."""

    CORE = "CORE"
    ERROR = "ERROR"
    METRICS = "METRICS"
    VALIDATION = "VALIDATION"


class TaskPartition(str, Enum):
    """The four mutually exclusive task lists of an execution state."""

    ASSIGNED = "assigned_tasks"
    COMPLETED = "completed_tasks"
    FAILED = "failed_tasks"
    BLOCKED = "blocked_tasks"


TASK_PARTITIONS: tuple[str, ...] = tuple(p.value for p in TaskPartition)


class StateHistoryEntry(BaseModel):
    """A single append-only audit record on an agent's history."""

    timestamp: UtcDatetime = Field(default_factory=utcnow)
    action: str
    category: StateCategory = StateCategory.CORE
    details: dict[str, Any] = {}


class ErrorInfo(BaseModel):
    """Serialisable projection of an exception stored as ``last_error``."""

    type: str = "Exception"
    message: str = ""
    context: dict[str, Any] = {}

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorInfo:
        context = getattr(exc, "context", None)
        return cls(
            type=type(exc).__name__,
            message=str(exc),
            context=dict(context) if isinstance(context, dict) else {},
        )


class _TaskPartitions(BaseModel):
    assigned_tasks: list[str] = []
    completed_tasks: list[str] = []
    failed_tasks: list[str] = []
    blocked_tasks: list[str] = []

    def partition_of(self, task_id: str) -> TaskPartition | None:
        """Return the partition currently holding *task_id*, if any."""
        for partition in TaskPartition:
            if task_id in getattr(self, partition.value):
                return partition
        return None

    def move_task(self, task_id: str, partition: TaskPartition | str) -> None:
        """Place *task_id* in *partition*, removing it from every other one."""
        target = TaskPartition(partition)
        for p in TaskPartition:
            tasks: list[str] = getattr(self, p.value)
            if p is target:
                if task_id not in tasks:
                    tasks.append(task_id)
            elif task_id in tasks:
                tasks.remove(task_id)


class ExecutionState(_TaskPartitions):
    """Mutable execution snapshot embedded in an :class:`AgentRecord`."""

    thinking: bool = False
    busy: bool = False
    error_count: int = 0
    retry_count: int = 0
    max_retries: int = 3
    iterations: int = 0
    max_iterations: int = 10
    last_error: ErrorInfo | None = None
    history: list[StateHistoryEntry] = []
    start_time: UtcDatetime = Field(default_factory=utcnow)
    last_active_time: UtcDatetime = Field(default_factory=utcnow)

    @classmethod
    def fresh(
        cls,
        *,
        max_retries: int = 3,
        max_iterations: int = 10,
        now: datetime | None = None,
    ) -> ExecutionState:
        """Return a zeroed execution state with the given bounds."""
        ts = now or utcnow()
        return cls(
            max_retries=max_retries,
            max_iterations=max_iterations,
            start_time=ts,
            last_active_time=ts,
        )


class AgentRecord(BaseModel):
    """Canonical per-agent record held by the store."""

    id: str
    name: str
    role: str
    status: AgentStatus = AgentStatus.INITIAL
    execution_state: ExecutionState | None = None
    metrics: dict[str, Any] | None = None
    config: dict[str, Any] = {}


class TaskState(_TaskPartitions):
    """Per-agent task bookkeeping recorded from execution contexts."""

    agent_id: str
    history: list[StateHistoryEntry] = []


class StateRef(BaseModel):
    id: str = ""
    status: AgentStatus | None = None


class ExecutionContext(BaseModel):
    """An execution-loop update applied via ``update_execution_context``."""

    operation: str = ""
    state: StateRef = Field(default_factory=StateRef)
    task_state: TaskState | None = None


class Snapshot(BaseModel):
    """Immutable point-in-time copy of the whole store."""

    model_config = ConfigDict(frozen=True)

    version: int = 0
    timestamp: UtcDatetime = Field(default_factory=utcnow)
    agents: dict[str, AgentRecord] = {}
    active_agents: list[str] = []
    task_state: dict[str, TaskState] = {}
    metadata: dict[str, Any] = {}

    def dump(self) -> bytes:
        """Serialise the snapshot to JSON bytes."""
        return self.model_dump_json().encode()

    @classmethod
    def load(cls, data: bytes | str) -> Snapshot:
        """Deserialise a snapshot produced by :meth:`dump`."""
        return cls.model_validate_json(data)


class ValidationMetadata(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    validated_fields: list[str] = []


class ValidationResult(BaseModel):
    """Outcome of a validator call. Never persisted."""

    is_valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []
    metadata: ValidationMetadata = Field(default_factory=ValidationMetadata)

    @classmethod
    def from_errors(
        cls,
        errors: list[str],
        warnings: list[str] | None = None,
        *,
        validated_fields: list[str] | None = None,
    ) -> ValidationResult:
        return cls(
            is_valid=not errors,
            errors=list(errors),
            warnings=list(warnings or []),
            metadata=ValidationMetadata(validated_fields=list(validated_fields or [])),
        )


class TaskStats(BaseModel):
    completed_count: int = 0
    failed_count: int = 0
    total_count: int = 0
    success_rate: float = 0.0


class StateMetrics(BaseModel):
    """Read-only summary returned by ``get_state_metrics``."""

    agent_id: str
    current_state: AgentStatus = AgentStatus.IDLE
    history_entry_count: int = 0
    blocked_task_count: int = 0
    error_count: int = 0
    iterations: int = 0
    task_stats: TaskStats = Field(default_factory=TaskStats)
    timestamp: datetime = Field(default_factory=utcnow)
