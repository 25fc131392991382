"""Tests for AgentStore."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentstate.core.metrics import InMemoryMetricsSink, MetricType
from agentstate.core.state.models import (
    AgentRecord,
    AgentStatus,
    ExecutionState,
    TaskState,
)
from agentstate.core.state.store import AgentStore, merge_patch
from agentstate.errors import AgentNotFoundError, StateError, ValidationError

if TYPE_CHECKING:
    from tests.conftest import FakeClock


def _record(agent_id: str = "a1", **kwargs: object) -> dict[str, object]:
    return {"id": agent_id, "name": "X", "role": "R", "status": "INITIAL", **kwargs}


class TestMergePatch:
    def test_nested_fields_merge_one_level(self) -> None:
        current = AgentRecord(
            id="a1", name="X", role="R", config={"a": 1}, execution_state=ExecutionState()
        )
        data = merge_patch(current, {"config": {"b": 2}, "execution_state": {"iterations": 2}})
        assert data["config"] == {"a": 1, "b": 2}
        assert data["execution_state"]["iterations"] == 2
        assert data["execution_state"]["max_iterations"] == 10

    def test_scalar_fields_replace(self) -> None:
        current = AgentRecord(id="a1", name="X", role="R")
        assert merge_patch(current, {"name": "Y"})["name"] == "Y"

    def test_record_patch_replaces_whole(self) -> None:
        current = AgentRecord(id="a1", name="X", role="R", config={"a": 1})
        data = merge_patch(current, AgentRecord(id="a1", name="Y", role="R"))
        assert data["config"] == {}


class TestAddAgent:
    def setup_method(self) -> None:
        self.sink = InMemoryMetricsSink()

    async def test_add_and_get(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock, metrics_sink=self.sink)
        await store.add_agent(_record())

        agent = store.get_agent("a1")
        assert agent is not None
        assert agent.status is AgentStatus.INITIAL
        assert agent.execution_state is not None
        assert agent.execution_state.assigned_tasks == []
        assert agent.execution_state.completed_tasks == []
        assert agent.execution_state.failed_tasks == []
        assert agent.execution_state.blocked_tasks == []

    async def test_marks_active(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record("a1"))
        await store.add_agent(_record("a2"))
        assert [a.id for a in store.get_active_agents()] == ["a1", "a2"]

    async def test_fresh_state_uses_store_bounds(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock, default_max_retries=7, default_max_iterations=20)
        agent = await store.add_agent(_record())
        assert agent.execution_state is not None
        assert agent.execution_state.max_retries == 7
        assert agent.execution_state.max_iterations == 20

    async def test_invalid_record_rejected(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        with pytest.raises(ValidationError, match="Agent name is required"):
            await store.add_agent(_record(name=""))
        assert store.get_all_agents() == []

    async def test_duplicate_rejected(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        with pytest.raises(StateError, match="already exists"):
            await store.add_agent(_record(name="Other"))
        agent = store.get_agent("a1")
        assert agent is not None
        assert agent.name == "X"

    async def test_stores_a_copy(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        record = AgentRecord(id="a1", name="X", role="R", config={"k": "v"})
        await store.add_agent(record)
        record.config["k"] = "mutated"

        stored = store.get_agent("a1")
        assert stored is not None
        assert stored.config == {"k": "v"}

    async def test_emits_usage_metric_and_snapshot(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock, metrics_sink=self.sink)
        await store.add_agent(_record())

        usage = self.sink.by_type(MetricType.USAGE)
        assert len(usage) == 1
        assert usage[0].metadata == {"agent_id": "a1", "operation": "add_agent"}
        assert len(store.snapshots) == 1
        assert "a1" in store.snapshots.get_latest_snapshot().agents


class TestGetAgent:
    async def test_unknown_returns_none(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        assert store.get_agent("missing") is None

    async def test_returns_independent_copy(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        first = store.get_agent("a1")
        assert first is not None
        first.name = "changed"
        second = store.get_agent("a1")
        assert second is not None
        assert second.name == "X"


class TestUpdateAgent:
    async def test_update_merges(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record(config={"a": 1}))

        updated = await store.update_agent("a1", {"status": "IDLE", "config": {"b": 2}})
        assert updated.status is AgentStatus.IDLE
        assert updated.config == {"a": 1, "b": 2}

    async def test_update_missing_raises_state_error(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        with pytest.raises(StateError):
            await store.update_agent("missing", {"name": "Y"})
        assert store.get_agent("missing") is None
        assert store.get_all_agents() == []

    async def test_update_missing_is_agent_not_found(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        with pytest.raises(AgentNotFoundError):
            await store.update_agent("missing", {"name": "Y"})

    async def test_rejected_update_leaves_record_untouched(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        before = store.get_agent("a1")
        snapshots_before = len(store.snapshots)

        with pytest.raises(ValidationError):
            await store.update_agent("a1", {"execution_state": {"iterations": 11}})

        assert store.get_agent("a1") == before
        assert len(store.snapshots) == snapshots_before

    async def test_retry_bound_enforced(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.update_agent("a1", {"execution_state": {"retry_count": 3}})

        with pytest.raises(ValidationError, match="retry_count"):
            await store.update_agent("a1", {"execution_state": {"retry_count": 4}})

        agent = store.get_agent("a1")
        assert agent is not None
        assert agent.execution_state is not None
        assert agent.execution_state.retry_count == 3

    async def test_partition_overlap_rejected(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.update_agent("a1", {"execution_state": {"assigned_tasks": ["t1"]}})

        with pytest.raises(ValidationError):
            await store.update_agent("a1", {"execution_state": {"completed_tasks": ["t1"]}})

    async def test_id_is_immutable(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        with pytest.raises(ValidationError, match="immutable"):
            await store.update_agent("a1", {"id": "a2"})

    async def test_bad_type_rejected(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        with pytest.raises(ValidationError):
            await store.update_agent("a1", {"status": "SLEEPING"})

    async def test_last_write_wins(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.update_agent("a1", {"name": "first"})
        await store.update_agent("a1", {"name": "second"})
        agent = store.get_agent("a1")
        assert agent is not None
        assert agent.name == "second"


class TestRemoveAgent:
    async def test_remove(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        assert await store.remove_agent("a1") is True
        assert store.get_agent("a1") is None
        assert store.get_active_agents() == []

    async def test_remove_unknown_is_noop(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        assert await store.remove_agent("missing") is False

    async def test_remove_unknown_strict(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock, strict_remove=True)
        with pytest.raises(AgentNotFoundError):
            await store.remove_agent("missing")

    async def test_remove_clears_task_state(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.update_execution_context(
            "a1",
            {
                "operation": "plan",
                "state": {"id": "a1", "status": "THINKING"},
                "task_state": {"agent_id": "a1", "assigned_tasks": ["t1"]},
            },
        )
        await store.remove_agent("a1")
        assert store.get_task_state("a1") is None


class TestSetActive:
    async def test_toggle(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.set_active("a1", False)
        assert store.get_active_agents() == []
        assert len(store.get_all_agents()) == 1
        await store.set_active("a1")
        assert [a.id for a in store.get_active_agents()] == ["a1"]

    async def test_unknown(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        with pytest.raises(AgentNotFoundError):
            await store.set_active("missing")


class TestUpdateExecutionContext:
    def _context(self, **overrides: object) -> dict[str, object]:
        context: dict[str, object] = {
            "operation": "execute",
            "state": {"id": "a1", "status": "EXECUTING_ACTION"},
            "task_state": {"agent_id": "ignored", "assigned_tasks": ["t1"]},
        }
        context.update(overrides)
        return context

    async def test_applies_status_and_task_state(self, clock: FakeClock) -> None:
        sink = InMemoryMetricsSink()
        store = AgentStore(clock=clock, metrics_sink=sink)
        await store.add_agent(_record())

        agent = await store.update_execution_context("a1", self._context())
        assert agent.status is AgentStatus.EXECUTING_ACTION

        task_state = store.get_task_state("a1")
        assert task_state is not None
        assert task_state.agent_id == "a1"
        assert task_state.assigned_tasks == ["t1"]

        transitions = sink.by_type(MetricType.STATE_TRANSITION)
        assert len(transitions) == 1
        assert transitions[0].metadata["from_status"] == "INITIAL"
        assert transitions[0].metadata["to_status"] == "EXECUTING_ACTION"

    async def test_incomplete_context_rejected(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        with pytest.raises(ValidationError, match="Operation is required"):
            await store.update_execution_context("a1", self._context(operation=""))

    async def test_unknown_agent(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        with pytest.raises(AgentNotFoundError):
            await store.update_execution_context("a1", self._context())


class TestStateMetrics:
    async def test_unknown_agent(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        metrics = store.get_state_metrics("ghost")
        assert metrics.current_state is AgentStatus.IDLE
        assert metrics.task_stats.total_count == 0
        assert metrics.task_stats.success_rate == 0

    async def test_success_rate_from_execution_state(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(
            _record(
                execution_state={
                    "completed_tasks": ["t1", "t2", "t3"],
                    "failed_tasks": ["t4"],
                    "blocked_tasks": ["t5"],
                }
            )
        )
        metrics = store.get_state_metrics("a1")
        assert metrics.current_state is AgentStatus.INITIAL
        assert metrics.task_stats.completed_count == 3
        assert metrics.task_stats.failed_count == 1
        assert metrics.task_stats.total_count == 4
        assert metrics.task_stats.success_rate == 0.75
        assert metrics.blocked_task_count == 1

    async def test_task_state_takes_precedence(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        await store.update_execution_context(
            "a1",
            {
                "operation": "finish",
                "state": {"id": "a1", "status": "TASK_COMPLETED"},
                "task_state": TaskState(agent_id="a1", completed_tasks=["t1"]),
            },
        )
        metrics = store.get_state_metrics("a1")
        assert metrics.current_state is AgentStatus.TASK_COMPLETED
        assert metrics.task_stats.success_rate == 1.0


class TestMetricsSinkFailures:
    async def test_failing_sink_does_not_break_commit(self, clock: FakeClock) -> None:
        sink = MagicMock()
        sink.track_metric = MagicMock(side_effect=RuntimeError("sink down"))
        store = AgentStore(clock=clock, metrics_sink=sink)

        await store.add_agent(_record())
        assert store.get_agent("a1") is not None
        sink.track_metric.assert_called_once()

    async def test_async_sink_is_awaited(self, clock: FakeClock) -> None:
        sink = MagicMock()
        sink.track_metric = AsyncMock()
        store = AgentStore(clock=clock, metrics_sink=sink)

        await store.add_agent(_record())
        sink.track_metric.assert_awaited_once()


class TestCleanup:
    async def test_cleanup_clears_everything(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock)
        await store.add_agent(_record())
        store.cleanup()
        assert store.get_all_agents() == []
        assert store.get_active_agents() == []
        assert len(store.snapshots) == 0

    async def test_snapshot_on_mutation_disabled(self, clock: FakeClock) -> None:
        store = AgentStore(clock=clock, snapshot_on_mutation=False)
        await store.add_agent(_record())
        assert len(store.snapshots) == 0
