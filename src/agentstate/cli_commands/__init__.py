"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from agentstate.cli_commands.inspect import inspect_cmd
    from agentstate.cli_commands.replay import replay
    from agentstate.cli_commands.validate import validate

    cli.add_command(replay)
    cli.add_command(inspect_cmd)
    cli.add_command(validate)
