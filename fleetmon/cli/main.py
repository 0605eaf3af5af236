#!/usr/bin/env python3
"""
Main CLI entry point for fleetmon.

Commands:
- watch: live dashboard of the fleet (or of the simulated fleet)
- snapshot: one discovery and poll, printed as a table or JSON
- endpoints: list, add, remove and prune persisted endpoints
"""

import asyncio
import json
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.live import Live

from fleetmon.core.config import MonitorSettings
from fleetmon.core.logging import LogScope, configure_logging
from fleetmon.monitor import FleetMonitor

from .fleet_cli import FleetCLI

console = Console()


def _settings(ctx: click.Context) -> MonitorSettings:
    return ctx.obj["settings"]


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--directory-url", help="Directory service base URL")
@click.option(
    "--network",
    type=click.Choice(["devnet", "mainnet"]),
    help="Use this network's registry as the directory",
)
@click.option(
    "--memory", is_flag=True, help="Keep discovered endpoints for this run only"
)
@click.option(
    "--debug-scope",
    "debug_scopes",
    multiple=True,
    type=click.Choice([scope.value for scope in LogScope]),
    help="Log this subsystem at DEBUG (repeatable)",
)
@click.pass_context
def cli(
    ctx,
    verbose: bool,
    directory_url: str | None,
    network: str | None,
    memory: bool,
    debug_scopes: tuple[str, ...],
):
    """
    Fleet monitor CLI.

    Discovers compute nodes through a directory service or local port probing,
    polls their metrics and reports node and cell health.
    """
    overrides: dict[str, object] = {}
    if directory_url is not None:
        overrides["directory_url"] = directory_url
    if network is not None:
        overrides["network"] = network
        overrides["use_network_directory"] = True
    if memory:
        overrides["persistence_mode"] = "memory"
    if debug_scopes:
        overrides["debug_scopes"] = debug_scopes
    try:
        settings = MonitorSettings(**overrides)
    except ValidationError as e:
        raise click.BadParameter(str(e)) from e

    configure_logging(
        "DEBUG" if verbose else settings.log_level,
        debug_scopes=settings.debug_scopes,
        colorize=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--simulate", is_flag=True, help="Watch the simulated fleet")
@click.option("--hide-offline", is_flag=True, help="Hide offline nodes")
@click.option(
    "--updates",
    "-n",
    type=int,
    default=0,
    help="Stop after this many updates (0 runs until interrupted)",
)
@click.pass_context
def watch(ctx, simulate: bool, hide_offline: bool, updates: int):
    """Continuously render fleet health."""
    settings = _settings(ctx)
    if simulate:
        settings = settings.model_copy(update={"simulate": True})
    hide_offline = hide_offline or settings.hide_offline_nodes
    fleet_cli = FleetCLI(settings, console)

    async def _watch():
        monitor = FleetMonitor(settings)
        await monitor.start()
        try:
            with Live(
                fleet_cli.render_snapshot(monitor.current_snapshot(), hide_offline),
                console=console,
                refresh_per_second=4,
            ) as live:
                await fleet_cli.follow(monitor, live, hide_offline, updates)
        finally:
            await monitor.stop()

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️ Fleet monitoring stopped[/yellow]")


@cli.command()
@click.option("--simulate", is_flag=True, help="Snapshot the simulated fleet")
@click.option("--hide-offline", is_flag=True, help="Hide offline nodes")
@click.option("--cells", is_flag=True, help="Also list under-replicated cells")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@click.pass_context
def snapshot(ctx, simulate: bool, hide_offline: bool, cells: bool, output: str):
    """Discover, poll once and print the fleet state."""
    settings = _settings(ctx)
    if simulate:
        settings = settings.model_copy(update={"simulate": True})
    hide_offline = hide_offline or settings.hide_offline_nodes
    fleet_cli = FleetCLI(settings, console)

    async def _snapshot():
        monitor = FleetMonitor(settings)
        try:
            return await monitor.refresh()
        finally:
            await monitor.stop()

    result = asyncio.run(_snapshot())
    if output == "json":
        click.echo(json.dumps(result.to_dict(hide_offline), indent=2))
    else:
        fleet_cli.display_snapshot(result, hide_offline, cells)


@cli.group()
def endpoints():
    """Manage persisted node endpoints."""
    pass


@endpoints.command("list")
@click.option("--check", is_flag=True, help="Poll each endpoint and show reachability")
@click.pass_context
def list_endpoints(ctx, check: bool):
    """List known endpoints."""
    fleet_cli = FleetCLI(_settings(ctx), console)
    connections = asyncio.run(fleet_cli.list_endpoints(check))
    if not connections:
        console.print("[yellow]⚠️ No endpoints known[/yellow]")
        return
    fleet_cli.display_endpoints(connections, check)


@endpoints.command("add")
@click.argument("endpoint", nargs=-1, required=True)
@click.pass_context
def add_endpoints(ctx, endpoint: tuple[str, ...]):
    """Add one or more endpoints."""
    fleet_cli = FleetCLI(_settings(ctx), console)
    asyncio.run(fleet_cli.add_endpoints(endpoint))


@endpoints.command("remove")
@click.argument("endpoint", nargs=-1, required=True)
@click.pass_context
def remove_endpoints(ctx, endpoint: tuple[str, ...]):
    """Remove one or more endpoints."""
    fleet_cli = FleetCLI(_settings(ctx), console)
    removed = asyncio.run(fleet_cli.remove_endpoints(endpoint))
    if removed == 0:
        sys.exit(1)


@endpoints.command("prune")
@click.pass_context
def prune_endpoints(ctx):
    """Remove endpoints that do not answer right now."""
    fleet_cli = FleetCLI(_settings(ctx), console)
    removed = asyncio.run(fleet_cli.prune_endpoints())
    console.print(f"[green]✅ Pruned {removed} unreachable endpoints[/green]")


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️ Operation cancelled by user[/yellow]")
        sys.exit(1)


if __name__ == "__main__":
    main()
