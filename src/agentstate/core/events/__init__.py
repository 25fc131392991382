"""Agent lifecycle events: models, dispatcher, reducer and store handler."""

from agentstate.core.events.dispatcher import DispatchResult, EventDispatcher, EventHandler
from agentstate.core.events.handler import MAX_CASCADE_DEPTH, AgentEventHandler
from agentstate.core.events.models import (
    EVENT_MODELS,
    AgentCreated,
    AgentDeleted,
    AgentEvent,
    AgentEventType,
    AgentUpdated,
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
    parse_event,
)
from agentstate.core.events.reducer import reduce

__all__ = [
    "EVENT_MODELS",
    "MAX_CASCADE_DEPTH",
    "AgentCreated",
    "AgentDeleted",
    "AgentEvent",
    "AgentEventHandler",
    "AgentEventType",
    "AgentUpdated",
    "ConfigUpdated",
    "DispatchResult",
    "ErrorHandled",
    "ErrorOccurred",
    "ErrorRecoveryCompleted",
    "ErrorRecoveryFailed",
    "ErrorRecoveryStarted",
    "EventDispatcher",
    "EventHandler",
    "IterationCompleted",
    "IterationFailed",
    "IterationStarted",
    "MetricsUpdated",
    "StatusChanged",
    "ValidationCompleted",
    "parse_event",
    "reduce",
]
