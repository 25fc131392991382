"""Tests for ``agentstate replay`` CLI command."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from click.testing import CliRunner

from agentstate.cli import main
from agentstate.core.state.models import Snapshot

if TYPE_CHECKING:
    from pathlib import Path

EVENTS_YAML = """\
- type: agent.created
  agent_id: a1
  agent: {id: a1, name: X, role: R}
- type: agent.iteration.started
  agent_id: a1
- type: agent.iteration.completed
  agent_id: a1
  result: done
"""


def _write(tmp_path: Path, content: str, name: str = "events.yaml") -> Path:
    f = tmp_path / name
    f.write_text(content)
    return f


class TestReplayCommand:
    def test_replay_table(self, tmp_path: Path) -> None:
        f = _write(tmp_path, EVENTS_YAML)

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f)])

        assert result.exit_code == 0, result.output
        assert "a1" in result.output
        assert "3 event(s)" in result.output

    def test_replay_json(self, tmp_path: Path) -> None:
        f = _write(tmp_path, EVENTS_YAML)

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f), "--json"])

        assert result.exit_code == 0, result.output
        agents = json.loads(result.stdout)
        assert len(agents) == 1
        assert agents[0]["id"] == "a1"
        assert agents[0]["execution_state"]["iterations"] == 1
        assert agents[0]["execution_state"]["thinking"] is False

    def test_replay_json_events_file(self, tmp_path: Path) -> None:
        events = [
            {
                "type": "agent.created",
                "agent_id": "a1",
                "agent": {"id": "a1", "name": "X", "role": "R"},
            },
            {"type": "agent.iteration.failed", "agent_id": "a1", "error": "llm timeout"},
        ]
        f = _write(tmp_path, json.dumps({"events": events}), name="events.json")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f), "--json"])

        assert result.exit_code == 0, result.output
        agent = json.loads(result.stdout)[0]
        assert agent["execution_state"]["error_count"] == 2
        assert agent["execution_state"]["last_error"]["message"] == "llm timeout"

    def test_replay_writes_snapshot(self, tmp_path: Path) -> None:
        f = _write(tmp_path, EVENTS_YAML)
        out = tmp_path / "snapshot.json"

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f), "--out", str(out)])

        assert result.exit_code == 0, result.output
        snapshot = Snapshot.load(out.read_bytes())
        assert list(snapshot.agents) == ["a1"]
        assert snapshot.active_agents == ["a1"]

    def test_replay_with_config(self, tmp_path: Path) -> None:
        f = _write(tmp_path, EVENTS_YAML)
        config = _write(tmp_path, "default_max_iterations: 5\n", name="settings.yaml")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f), "--config", str(config), "--json"])

        assert result.exit_code == 0, result.output
        agent = json.loads(result.stdout)[0]
        assert agent["execution_state"]["max_iterations"] == 5
        assert "State core initialised" in result.stderr

    def test_replay_failed_event_exits_1(self, tmp_path: Path) -> None:
        f = _write(tmp_path, "- type: agent.iteration.started\n  agent_id: ghost\n")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f)])

        assert result.exit_code == 1
        assert "1 event(s) failed" in result.output

    def test_replay_unknown_event_type(self, tmp_path: Path) -> None:
        f = _write(tmp_path, "- type: agent.exploded\n  agent_id: a1\n")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f)])

        assert result.exit_code == 1
        assert "Replay error" in result.output

    def test_replay_not_a_list(self, tmp_path: Path) -> None:
        f = _write(tmp_path, "type: agent.created\n")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f)])

        assert result.exit_code == 1
        assert "Error loading replay input" in result.output

    def test_replay_bad_config(self, tmp_path: Path) -> None:
        f = _write(tmp_path, EVENTS_YAML)
        config = _write(tmp_path, "max_snapshots: 0\n", name="settings.yaml")

        runner = CliRunner()
        result = runner.invoke(main, ["replay", str(f), "--config", str(config)])

        assert result.exit_code == 1

    def test_replay_missing_file(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["replay", "/nonexistent/events.yaml"])
        assert result.exit_code != 0


class TestMainGroup:
    def test_version(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help_lists_commands(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in ("replay", "inspect", "validate"):
            assert command in result.output
