"""StateCore: the explicitly wired agent state core.

One :class:`StateCore` owns one validator, store, snapshot manager,
dispatcher and event handler.  Nothing is global; construct as many cores
as you need (one per process in production, one per test in tests).

Usage::

    core = StateCore.from_yaml("agentstate.yaml")
    await core.initialize()
    await core.add_agent({"id": "a1", "name": "Researcher", "role": "research"})
    await core.emit(IterationStarted(agent_id="a1"))
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from agentstate.config import CoreSettings, SettingsLoader
from agentstate.core.events.dispatcher import DispatchResult, EventDispatcher, EventHandler
from agentstate.core.events.handler import AgentEventHandler
from agentstate.core.events.models import AgentEvent, AgentEventType
from agentstate.core.metrics import (
    InMemoryMetricsSink,
    MetricEvent,
    MetricsSink,
    MetricType,
    emit_metric,
)
from agentstate.core.state.models import (
    AgentRecord,
    ExecutionContext,
    Snapshot,
    StateMetrics,
    TaskState,
    utcnow,
)
from agentstate.core.state.store import AgentStore
from agentstate.core.state.validator import StateValidator
from agentstate.errors import InitializationError
from agentstate.utils.telemetry import configure_telemetry

logger = logging.getLogger(__name__)


class StateCore:
    """Public API of the agent state core.

    Args:
        settings: Tunables; defaults to :class:`CoreSettings` defaults.
        metrics_sink: Receives one event per committed mutation.  Defaults to
            an :class:`InMemoryMetricsSink` sized by
            ``settings.metrics_buffer_size``.
        clock: Time source shared by the store, snapshots and reducer.
    """

    def __init__(
        self,
        settings: CoreSettings | None = None,
        *,
        metrics_sink: MetricsSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or CoreSettings()
        self.metrics_sink: MetricsSink = metrics_sink or InMemoryMetricsSink(
            maxlen=self.settings.metrics_buffer_size
        )
        self._clock = clock or utcnow

        self.validator = StateValidator()
        self.store = AgentStore(
            validator=self.validator,
            metrics_sink=self.metrics_sink,
            clock=self._clock,
            max_snapshots=self.settings.max_snapshots,
            snapshot_on_mutation=self.settings.snapshot_on_mutation,
            strict_remove=self.settings.strict_remove,
            default_max_retries=self.settings.default_max_retries,
            default_max_iterations=self.settings.default_max_iterations,
        )
        self.dispatcher = EventDispatcher()
        self.handler = AgentEventHandler(
            self.store,
            self.dispatcher,
            clock=self._clock,
            max_retries=self.settings.default_max_retries,
            max_iterations=self.settings.default_max_iterations,
            metrics_sink=self.metrics_sink,
        )
        self._initialized = False

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs: Any) -> StateCore:
        """Load settings from YAML and return an uninitialised core."""
        return cls(SettingsLoader(Path(path)).load(), **kwargs)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Attach the event handler and report system health.

        Calling this more than once is a no-op.

        Raises:
            InitializationError: Telemetry or handler wiring failed.
        """
        if self._initialized:
            return

        try:
            configure_telemetry(self.settings.telemetry)
            self.handler.attach(self.dispatcher)
        except Exception as exc:
            raise InitializationError(f"Failed to initialise state core: {exc}") from exc

        self._initialized = True
        logger.info(
            "State core initialised (max_snapshots=%d, strict_remove=%s)",
            self.settings.max_snapshots,
            self.settings.strict_remove,
        )
        await emit_metric(
            self.metrics_sink,
            MetricEvent(
                type=MetricType.SYSTEM_HEALTH,
                timestamp=self._clock(),
                metadata={"component": "state_core", "status": "initialized"},
            ),
        )

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    async def add_agent(self, record: AgentRecord | Mapping[str, Any]) -> AgentRecord:
        return await self.store.add_agent(record)

    def get_agent(self, agent_id: str) -> AgentRecord | None:
        return self.store.get_agent(agent_id)

    def get_all_agents(self) -> list[AgentRecord]:
        return self.store.get_all_agents()

    def get_active_agents(self) -> list[AgentRecord]:
        return self.store.get_active_agents()

    async def update_agent(
        self, agent_id: str, patch: Mapping[str, Any] | AgentRecord
    ) -> AgentRecord:
        return await self.store.update_agent(agent_id, patch)

    async def remove_agent(self, agent_id: str) -> bool:
        return await self.store.remove_agent(agent_id)

    async def update_execution_context(
        self, agent_id: str, context: ExecutionContext | Mapping[str, Any]
    ) -> AgentRecord:
        return await self.store.update_execution_context(agent_id, context)

    def get_task_state(self, agent_id: str) -> TaskState | None:
        return self.store.get_task_state(agent_id)

    def get_state_metrics(self, agent_id: str) -> StateMetrics:
        return self.store.get_state_metrics(agent_id)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def create_snapshot(self) -> Snapshot:
        return self.store.snapshots.create_snapshot()

    def get_latest_snapshot(self) -> Snapshot:
        return self.store.snapshots.get_latest_snapshot()

    def get_snapshot(self, timestamp: datetime) -> Snapshot | None:
        return self.store.snapshots.get_snapshot(timestamp)

    def restore_snapshot(self, timestamp: datetime) -> Snapshot:
        return self.store.snapshots.restore_snapshot(timestamp)

    def load_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Validate *snapshot*, add it to the history and restore it as the live state."""
        return self.store.snapshots.load_snapshot(snapshot)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def emit(self, event: AgentEvent) -> DispatchResult:
        """Dispatch *event*, initialising the core first if needed."""
        await self.initialize()
        return await self.dispatcher.emit(event)

    def on(self, event_type: AgentEventType | str, handler: EventHandler) -> None:
        self.dispatcher.on(event_type, handler)

    def off(self, event_type: AgentEventType | str, handler: EventHandler) -> None:
        self.dispatcher.off(event_type, handler)

    def cleanup(self) -> None:
        """Drop all state and detach the event handler."""
        self.store.cleanup()
        if self._initialized:
            self.handler.detach(self.dispatcher)
            self._initialized = False
