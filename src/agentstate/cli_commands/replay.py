"""``agentstate replay`` — drive a list of lifecycle events through a fresh core."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import yaml

from agentstate.cli_commands._output import (
    configure_logging,
    console,
    print_agents_json,
    print_agents_table,
)
from agentstate.core.events.dispatcher import DispatchResult  # noqa: TC001
from agentstate.core.events.models import parse_event
from agentstate.errors import AgentStateError, InvalidEventError

if TYPE_CHECKING:
    from agentstate.runtime import StateCore


def load_events(path: Path) -> list[dict[str, Any]]:
    """Read a YAML or JSON events file.

    The document is either a list of events or a mapping with an ``events``
    list.
    """
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("events")
    if not isinstance(data, list):
        raise InvalidEventError("Events file must contain a list of events")
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise InvalidEventError(f"Event #{index} must be a mapping")
    return data


async def _replay(core: StateCore, raw_events: list[dict[str, Any]]) -> list[DispatchResult]:
    await core.initialize()
    results = []
    for raw in raw_events:
        results.append(await core.emit(parse_event(raw)))
    return results


@click.command()
@click.argument("events_file", type=click.Path(exists=True))
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    default=None,
    help="Settings YAML for the state core.",
)
@click.option(
    "--out",
    "out_file",
    type=click.Path(),
    default=None,
    help="Write the final snapshot to this file.",
)
@click.option("--json", "as_json", is_flag=True, help="Output agents as JSON.")
@click.pass_context
def replay(
    ctx: click.Context,
    events_file: str,
    config_file: str | None,
    out_file: str | None,
    as_json: bool,
) -> None:
    """Replay the lifecycle events in EVENTS_FILE and print the resulting agents."""
    from agentstate.runtime import StateCore

    log_level = (ctx.obj or {}).get("log_level")

    try:
        core = StateCore.from_yaml(config_file) if config_file else StateCore()
        events = load_events(Path(events_file))
    except (AgentStateError, yaml.YAMLError, OSError) as exc:
        console.print(f"[red]Error loading replay input:[/red] {exc}")
        sys.exit(1)

    configure_logging(log_level or (core.settings.log_level if config_file else "WARNING"))

    try:
        results = asyncio.run(_replay(core, events))
    except AgentStateError as exc:
        console.print(f"[red]Replay error:[/red] {exc}")
        sys.exit(1)

    agents = core.get_all_agents()
    if as_json:
        print_agents_json(agents)
    else:
        print_agents_table(agents, title=f"Agents after {len(results)} event(s)")

    failed = [r for r in results if not r.ok]
    if failed and not as_json:
        for result in failed:
            for error in result.errors:
                console.print(
                    f"[yellow]{result.event.type.value}[/yellow] "
                    f"({result.event.agent_id}): {error}"
                )

    if out_file:
        snapshot = core.create_snapshot()
        Path(out_file).write_bytes(snapshot.dump())
        if not as_json:
            console.print(f"Snapshot v{snapshot.version} written to {out_file}")

    if failed:
        if not as_json:
            console.print(f"[red]{len(failed)} event(s) failed.[/red]")
        sys.exit(1)
