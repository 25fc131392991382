"""Snapshot manager: bounded history of immutable store copies.

:class:`StateContainer` holds the live maps the store mutates.
:class:`SnapshotManager` captures deep copies of it after each commit,
retains the most recent ``max_snapshots`` (oldest evicted first), and can
swap a validated snapshot back in as the live state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from agentstate.core.state.models import AgentRecord, Snapshot, TaskState, utcnow
from agentstate.core.state.validator import StateValidator
from agentstate.errors import StateError, ValidationError
from agentstate.utils.telemetry import ATTR_SNAPSHOT_COUNT, ATTR_SNAPSHOT_VERSION, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

DEFAULT_MAX_SNAPSHOTS = 10

_TICK = timedelta(microseconds=1)


class StateContainer:
    """The mutable maps shared by the store (writer) and snapshots (reader)."""

    def __init__(self) -> None:
        self.agents: dict[str, AgentRecord] = {}
        # dict keys double as an insertion-ordered set
        self.active_agents: dict[str, None] = {}
        self.task_state: dict[str, TaskState] = {}

    def capture(self, *, version: int, timestamp: datetime) -> Snapshot:
        """Return a deep, immutable copy of the current maps."""
        return Snapshot(
            version=version,
            timestamp=timestamp,
            agents={k: v.model_copy(deep=True) for k, v in self.agents.items()},
            active_agents=list(self.active_agents),
            task_state={k: v.model_copy(deep=True) for k, v in self.task_state.items()},
        )

    def load(self, snapshot: Snapshot) -> None:
        """Replace the live maps with deep copies of *snapshot*."""
        self.agents = {k: v.model_copy(deep=True) for k, v in snapshot.agents.items()}
        self.active_agents = dict.fromkeys(snapshot.active_agents)
        self.task_state = {k: v.model_copy(deep=True) for k, v in snapshot.task_state.items()}

    def clear(self) -> None:
        self.agents.clear()
        self.active_agents.clear()
        self.task_state.clear()


class SnapshotManager:
    """Versioned, bounded snapshot history over a :class:`StateContainer`.

    Snapshot timestamps are strictly increasing: when the clock has not
    advanced since the previous capture, the new timestamp is bumped by one
    microsecond so exact-timestamp lookups stay unambiguous.
    """

    def __init__(
        self,
        container: StateContainer,
        *,
        max_snapshots: int = DEFAULT_MAX_SNAPSHOTS,
        clock: Callable[[], datetime] = utcnow,
        validator: StateValidator | None = None,
    ) -> None:
        if max_snapshots < 1:
            msg = "max_snapshots must be at least 1"
            raise ValueError(msg)
        self._container = container
        self.max_snapshots = max_snapshots
        self._clock = clock
        self._validator = validator or StateValidator()
        self._snapshots: dict[datetime, Snapshot] = {}
        self._version = 0

    def __len__(self) -> int:
        return len(self._snapshots)

    def create_snapshot(self) -> Snapshot:
        """Capture the live state, then evict beyond ``max_snapshots``."""
        with _tracer.start_as_current_span("agentstate.snapshot.create") as span:
            timestamp = self._clock()
            if self._snapshots:
                latest = next(reversed(self._snapshots))
                if timestamp <= latest:
                    timestamp = latest + _TICK

            self._version += 1
            snapshot = self._container.capture(version=self._version, timestamp=timestamp)
            self._snapshots[timestamp] = snapshot
            self._evict()

            span.set_attribute(ATTR_SNAPSHOT_VERSION, snapshot.version)
            span.set_attribute(ATTR_SNAPSHOT_COUNT, len(self._snapshots))
            return snapshot

    def import_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Add an externally loaded snapshot (e.g. from a file) to the history.

        The snapshot is not validated here; :meth:`restore_snapshot` does that.
        """
        self._snapshots[snapshot.timestamp] = snapshot
        self._snapshots = dict(sorted(self._snapshots.items()))
        self._version = max(self._version, snapshot.version)
        self._evict()
        return snapshot

    def load_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Validate an external snapshot, add it to the history and make it live.

        Raises:
            ValidationError: The snapshot is inconsistent; neither the history
                nor the live state changes.
        """
        self._check(snapshot)
        self.import_snapshot(snapshot)
        self._container.load(snapshot)
        logger.info("Loaded snapshot v%d (%s)", snapshot.version, snapshot.timestamp.isoformat())
        return snapshot

    def get_latest_snapshot(self) -> Snapshot:
        """Return the most recent snapshot, or an empty one if none exist."""
        if not self._snapshots:
            return Snapshot(version=0, timestamp=self._clock())
        return self._snapshots[next(reversed(self._snapshots))]

    def get_snapshot(self, timestamp: datetime) -> Snapshot | None:
        """Exact-timestamp lookup."""
        return self._snapshots.get(timestamp)

    def list_snapshots(self) -> list[Snapshot]:
        """All retained snapshots, oldest first."""
        return list(self._snapshots.values())

    def restore_snapshot(self, timestamp: datetime) -> Snapshot:
        """Validate the snapshot at *timestamp* and make it the live state.

        Raises:
            StateError: No snapshot exists at *timestamp*.
            ValidationError: The snapshot is internally inconsistent; the live
                state is left untouched.
        """
        snapshot = self._snapshots.get(timestamp)
        if snapshot is None:
            raise StateError(f"Snapshot not found: {timestamp.isoformat()}")

        self._check(snapshot)
        self._container.load(snapshot)
        logger.info("Restored snapshot v%d (%s)", snapshot.version, timestamp.isoformat())
        return snapshot

    def clear(self) -> None:
        self._snapshots.clear()

    def _check(self, snapshot: Snapshot) -> None:
        result = self._validator.validate_snapshot(snapshot, now=self._clock())
        if not result.is_valid:
            raise ValidationError("Invalid snapshot", result.errors)

    def _evict(self) -> None:
        while len(self._snapshots) > self.max_snapshots:
            oldest = next(iter(self._snapshots))
            del self._snapshots[oldest]
