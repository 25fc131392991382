"""Agent state: record store, snapshots and structural validation."""

from agentstate.core.state.models import (
    AgentRecord,
    AgentStatus,
    ErrorInfo,
    ExecutionContext,
    ExecutionState,
    Snapshot,
    StateCategory,
    StateHistoryEntry,
    StateMetrics,
    TaskPartition,
    TaskState,
    ValidationResult,
)
from agentstate.core.state.snapshots import SnapshotManager, StateContainer
from agentstate.core.state.store import AgentStore
from agentstate.core.state.validator import StateValidator

__all__ = [
    "AgentRecord",
    "AgentStatus",
    "AgentStore",
    "ErrorInfo",
    "ExecutionContext",
    "ExecutionState",
    "Snapshot",
    "SnapshotManager",
    "StateCategory",
    "StateContainer",
    "StateHistoryEntry",
    "StateMetrics",
    "StateValidator",
    "TaskPartition",
    "TaskState",
    "ValidationResult",
]
