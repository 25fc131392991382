"""Shared error types for the agent state core."""

from __future__ import annotations

from typing import Any


class AgentStateError(Exception):
    """Base error for all agent state core failures."""


class ValidationError(AgentStateError):
    """A structural invariant was violated; nothing was committed."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: {', '.join(self.errors)}"
        super().__init__(message)


class InvalidEventError(ValidationError):
    """A lifecycle event is missing its agent id or type."""


class StateError(AgentStateError):
    """A referenced entity does not exist or cannot be modified."""


class AgentNotFoundError(StateError):
    """No agent with the given id is held by the store."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class InitializationError(AgentStateError):
    """The store or dispatcher could not be set up."""


class ConfigurationError(AgentStateError):
    """Settings could not be read or failed validation."""


class ExecutionError(AgentStateError):
    """Wraps an upstream failure surfaced through a lifecycle event."""

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.cause = cause
        self.context = dict(context or {})
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause
