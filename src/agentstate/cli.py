"""agentstate CLI entrypoint."""

from __future__ import annotations

import click

from agentstate import __version__


@click.group()
@click.version_option(version=__version__, prog_name="agentstate")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the log level (defaults to the settings file, else WARNING).",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """agentstate — inspect and replay agent state."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper() if log_level else None


# Register subcommands
from agentstate.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
