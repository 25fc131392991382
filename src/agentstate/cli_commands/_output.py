"""Shared CLI output formatters."""

from __future__ import annotations

import json
import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agentstate.core.state.models import AgentRecord, Snapshot, ValidationResult  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route stdlib logging through rich on stderr at *level*."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def print_agents_table(agents: list[AgentRecord], *, title: str = "Agents") -> None:
    """Pretty-print agent records as a table."""
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Status")
    table.add_column("Iterations", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("History", justify="right")
    table.add_column("Last Error")

    for agent in agents:
        state = agent.execution_state
        last_error = state.last_error if state is not None else None
        table.add_row(
            agent.id,
            agent.name,
            agent.role,
            agent.status.value,
            str(state.iterations) if state is not None else "-",
            str(state.error_count) if state is not None else "-",
            str(len(state.history)) if state is not None else "-",
            _truncate(f"{last_error.type}: {last_error.message}", 40) if last_error else "-",
        )

    console.print(table)


def print_agents_json(agents: list[AgentRecord]) -> None:
    console.print_json(json.dumps([a.model_dump(mode="json") for a in agents]))


def print_snapshot(snapshot: Snapshot, *, as_json: bool = False) -> None:
    """Pretty-print a snapshot summary."""
    if as_json:
        console.print_json(snapshot.model_dump_json())
        return

    console.print("\n[bold]Snapshot Summary[/bold]")
    console.print(f"  Version: {snapshot.version}")
    console.print(f"  Timestamp: {snapshot.timestamp.isoformat()}")
    console.print(f"  Agents: {len(snapshot.agents)}")
    console.print(f"  Active agents: {', '.join(snapshot.active_agents) or '(none)'}")
    console.print(f"  Task states: {len(snapshot.task_state)}")

    if snapshot.agents:
        console.print()
        print_agents_table(list(snapshot.agents.values()))


def print_snapshot_section(snapshot: Snapshot, section: str, *, as_json: bool = False) -> None:
    """Print a specific section of the snapshot."""
    data: Any
    if section == "agents":
        if not as_json:
            print_agents_table(list(snapshot.agents.values()))
            return
        data = {k: v.model_dump(mode="json") for k, v in snapshot.agents.items()}
    elif section == "active":
        data = list(snapshot.active_agents)
    elif section == "tasks":
        data = {k: v.model_dump(mode="json") for k, v in snapshot.task_state.items()}
    else:
        console.print(f"[red]Unknown section: {section}[/red]")
        return

    if as_json:
        console.print_json(json.dumps(data, default=str))
    else:
        console.print(data)


def print_validation_result(result: ValidationResult) -> None:
    if result.is_valid:
        console.print("[green]Snapshot is valid.[/green]")
    else:
        console.print(f"[red]Snapshot is invalid ({len(result.errors)} error(s)):[/red]")
        for error in result.errors:
            console.print(f"  - {error}")
    for warning in result.warnings:
        console.print(f"  [yellow]warning:[/yellow] {warning}")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
