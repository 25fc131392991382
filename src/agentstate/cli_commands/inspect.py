"""``agentstate inspect`` — inspect a snapshot file."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from agentstate.cli_commands._output import console, print_snapshot, print_snapshot_section
from agentstate.core.state.models import Snapshot


@click.command("inspect")
@click.argument("snapshot_file", type=click.Path(exists=True))
@click.option(
    "--section",
    type=click.Choice(["agents", "active", "tasks"]),
    default=None,
    help="Show only a specific section.",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def inspect_cmd(snapshot_file: str, section: str | None, as_json: bool) -> None:
    """Inspect a snapshot file.

    SNAPSHOT_FILE is a JSON file produced by Snapshot.dump() or ``agentstate replay --out``.
    """
    path = Path(snapshot_file)
    try:
        snapshot = Snapshot.load(path.read_bytes())
    except Exception as exc:
        console.print(f"[red]Error loading snapshot:[/red] {exc}")
        sys.exit(1)

    if section:
        print_snapshot_section(snapshot, section, as_json=as_json)
    else:
        print_snapshot(snapshot, as_json=as_json)
