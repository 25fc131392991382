"""``agentstate validate`` — check a snapshot file for consistency."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from agentstate.cli_commands._output import console, print_validation_result
from agentstate.core.state.models import Snapshot
from agentstate.core.state.validator import StateValidator


@click.command()
@click.argument("snapshot_file", type=click.Path(exists=True))
def validate(snapshot_file: str) -> None:
    """Validate SNAPSHOT_FILE; exits with status 1 when it is inconsistent."""
    path = Path(snapshot_file)
    try:
        snapshot = Snapshot.load(path.read_bytes())
    except Exception as exc:
        console.print(f"[red]Error loading snapshot:[/red] {exc}")
        sys.exit(1)

    result = StateValidator().validate_snapshot(snapshot)
    print_validation_result(result)
    if not result.is_valid:
        sys.exit(1)
