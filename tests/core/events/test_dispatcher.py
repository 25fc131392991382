"""Tests for EventDispatcher."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentstate.core.events.dispatcher import EventDispatcher
from agentstate.core.events.models import AgentEvent, AgentEventType, IterationStarted

STARTED = AgentEventType.AGENT_ITERATION_STARTED


class TestSubscription:
    def test_on_registers_in_order(self) -> None:
        dispatcher = EventDispatcher()
        first, second = MagicMock(), MagicMock()
        dispatcher.on(STARTED, first)
        dispatcher.on(STARTED, second)
        assert dispatcher.handlers(STARTED) == [first, second]

    def test_duplicate_registration_is_noop(self) -> None:
        dispatcher = EventDispatcher()
        handler = MagicMock()
        dispatcher.on(STARTED, handler)
        dispatcher.on(STARTED, handler)
        assert dispatcher.handlers(STARTED) == [handler]

    def test_accepts_string_type(self) -> None:
        dispatcher = EventDispatcher()
        handler = MagicMock()
        dispatcher.on("agent.iteration.started", handler)
        assert dispatcher.handlers(STARTED) == [handler]

    def test_off(self) -> None:
        dispatcher = EventDispatcher()
        handler = MagicMock()
        dispatcher.on(STARTED, handler)
        dispatcher.off(STARTED, handler)
        assert dispatcher.handlers(STARTED) == []

    def test_off_unknown_is_noop(self) -> None:
        dispatcher = EventDispatcher()
        dispatcher.off(STARTED, MagicMock())
        assert dispatcher.handlers(STARTED) == []

    def test_unknown_type_string_raises(self) -> None:
        dispatcher = EventDispatcher()
        with pytest.raises(ValueError):
            dispatcher.on("agent.exploded", MagicMock())


class TestEmit:
    async def test_calls_sync_and_async_handlers_in_order(self) -> None:
        dispatcher = EventDispatcher()
        calls: list[str] = []

        def sync_handler(event: AgentEvent) -> None:
            calls.append("sync")

        async def async_handler(event: AgentEvent) -> None:
            calls.append("async")

        dispatcher.on(STARTED, async_handler)
        dispatcher.on(STARTED, sync_handler)

        result = await dispatcher.emit(IterationStarted(agent_id="a1"))
        assert calls == ["async", "sync"]
        assert result.handled == 2
        assert result.ok

    async def test_only_matching_type(self) -> None:
        dispatcher = EventDispatcher()
        other = AsyncMock()
        dispatcher.on(AgentEventType.AGENT_ERROR_OCCURRED, other)

        await dispatcher.emit(IterationStarted(agent_id="a1"))
        other.assert_not_awaited()

    async def test_no_handlers(self, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = EventDispatcher()
        with caplog.at_level(logging.DEBUG, logger="agentstate.core.events.dispatcher"):
            result = await dispatcher.emit(IterationStarted(agent_id="a1"))
        assert result.handled == 0
        assert result.ok
        assert "No handlers" in caplog.text

    async def test_failing_handler_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        dispatcher = EventDispatcher()
        error = RuntimeError("handler broke")
        failing = AsyncMock(side_effect=error)
        after = AsyncMock()
        dispatcher.on(STARTED, failing)
        dispatcher.on(STARTED, after)

        with caplog.at_level(logging.ERROR, logger="agentstate.core.events.dispatcher"):
            result = await dispatcher.emit(IterationStarted(agent_id="a1"))

        after.assert_awaited_once()
        assert result.handled == 1
        assert result.errors == [error]
        assert not result.ok
        assert "handler broke" in caplog.text

    async def test_handler_receives_event(self) -> None:
        dispatcher = EventDispatcher()
        handler = AsyncMock()
        dispatcher.on(STARTED, handler)
        event = IterationStarted(agent_id="a1")

        result = await dispatcher.emit(event)
        handler.assert_awaited_once_with(event)
        assert result.event is event
