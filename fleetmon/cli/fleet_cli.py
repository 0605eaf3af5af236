"""
Fleet CLI helpers.

Rendering of fleet snapshots as rich tables and the endpoint management
operations behind the ``fleetmon endpoints`` commands.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from fleetmon.core.config import MonitorSettings
from fleetmon.core.persistence.registry import PersistenceRegistry
from fleetmon.core.statistics import ClusterHealth
from fleetmon.datastructures.node_types import (
    CellHealth,
    Connection,
    NodeRecord,
    NodeStatus,
)
from fleetmon.discovery.service import DiscoveryService
from fleetmon.monitor import FleetMonitor, FleetSnapshot

STATUS_STYLES = {
    NodeStatus.HEALTHY: "[green]🟢 healthy[/green]",
    NodeStatus.DEGRADED: "[yellow]🟡 degraded[/yellow]",
    NodeStatus.OFFLINE: "[red]🔴 offline[/red]",
}

CLUSTER_STYLES = {
    ClusterHealth.HEALTHY: "green",
    ClusterHealth.DEGRADED: "yellow",
    ClusterHealth.CRITICAL: "red",
}


class FleetCLI:
    """Command line front end over a discovery service or monitor."""

    def __init__(
        self, settings: MonitorSettings | None = None, console: Console | None = None
    ) -> None:
        self.settings = settings or MonitorSettings()
        self.console = console or Console()

    @asynccontextmanager
    async def discovery_service(self) -> AsyncIterator[DiscoveryService]:
        service = DiscoveryService(
            self.settings,
            persistence=PersistenceRegistry(self.settings.persistence_config()),
        )
        await service.open()
        try:
            yield service
        finally:
            await service.close()

    async def list_endpoints(self, check: bool = False) -> list[Connection]:
        async with self.discovery_service() as service:
            if check:
                await service.refresh()
                return service.connections()
            return [
                Connection(endpoint=endpoint, node_id="", connected=False)
                for endpoint in service.store.list_endpoints()
            ]

    async def add_endpoints(self, endpoints: tuple[str, ...]) -> int:
        async with self.discovery_service() as service:
            added = 0
            for endpoint in endpoints:
                if await service.add_endpoint(endpoint):
                    added += 1
                    self.console.print(f"[green]✅ Added {endpoint}[/green]")
                else:
                    self.console.print(f"[yellow]⚠️ Already known: {endpoint}[/yellow]")
            return added

    async def remove_endpoints(self, endpoints: tuple[str, ...]) -> int:
        async with self.discovery_service() as service:
            removed = 0
            for endpoint in endpoints:
                if await service.remove_endpoint(endpoint):
                    removed += 1
                    self.console.print(f"[green]✅ Removed {endpoint}[/green]")
                else:
                    self.console.print(f"[yellow]⚠️ Not known: {endpoint}[/yellow]")
            return removed

    async def prune_endpoints(self) -> int:
        """Poll every endpoint once, then drop the ones that did not answer."""
        async with self.discovery_service() as service:
            await service.refresh()
            return await service.prune_unreachable()

    def display_endpoints(self, connections: list[Connection], checked: bool) -> None:
        table = Table(title="🔗 Known Endpoints")
        table.add_column("Endpoint", style="cyan", no_wrap=True)
        if checked:
            table.add_column("Node", style="magenta")
            table.add_column("Reachable", justify="center")
        for connection in connections:
            if checked:
                table.add_row(
                    connection.endpoint,
                    connection.node_id,
                    "[green]yes[/green]" if connection.connected else "[red]no[/red]",
                )
            else:
                table.add_row(connection.endpoint)
        self.console.print(table)

    def render_snapshot(
        self, snapshot: FleetSnapshot, hide_offline: bool = False
    ) -> Group:
        stats = snapshot.statistics
        summary = (
            f"[bold]Source:[/bold] {snapshot.source}\n"
            f"[bold]Nodes:[/bold] {stats.online_nodes}/{stats.total_nodes} online "
            f"([green]{stats.healthy_nodes}[/green] healthy, "
            f"[yellow]{stats.degraded_nodes}[/yellow] degraded, "
            f"[red]{stats.offline_nodes}[/red] offline)\n"
            f"[bold]Cells:[/bold] [green]{stats.healthy_cells}[/green] healthy, "
            f"[yellow]{stats.degraded_cells}[/yellow] degraded, "
            f"[red]{stats.empty_cells}[/red] empty of {stats.total_cells} "
            f"(RF {stats.replication_factor})\n"
            f"[bold]Throughput:[/bold] {stats.total_throughput:.1f} ops/s  "
            f"[bold]Workers:[/bold] {stats.total_active_workers}  "
            f"[bold]p50/p99:[/bold] {stats.avg_latency_p50:.1f}/"
            f"{stats.avg_latency_p99:.1f} ms"
        )
        if snapshot.error is not None:
            summary += f"\n[red]❌ {snapshot.error.message}[/red]"
        panel = Panel(
            summary,
            title=f"🛰️ Fleet {stats.cluster_health}",
            border_style=CLUSTER_STYLES[stats.cluster_health],
        )
        return Group(panel, self.node_table(snapshot.visible_nodes(hide_offline)))

    def node_table(self, nodes: tuple[NodeRecord, ...]) -> Table:
        table = Table(title="🖥️ Nodes")
        table.add_column("Node", style="cyan", no_wrap=True)
        table.add_column("Endpoint", style="blue")
        table.add_column("Status", justify="center")
        table.add_column("TEE", justify="center")
        table.add_column("Cells", justify="right")
        table.add_column("Workers", justify="right")
        table.add_column("Throughput", justify="right")
        table.add_column("p50 / p99 ms", justify="right")
        table.add_column("Loss", justify="right")
        for node in nodes:
            tee = node.tee_platform.value if node.tee_platform else "-"
            if node.tee_attested:
                tee += " ✅"
            table.add_row(
                node.node_id,
                node.endpoint,
                STATUS_STYLES[node.status],
                tee,
                str(len(node.claimed_cell_ids())),
                f"{node.workers.active}/{node.workers.total}",
                f"{node.throughput:.1f}",
                f"{node.latency.p50:.1f} / {node.latency.p99:.1f}",
                f"{node.packet_loss:.0%}",
            )
        return table

    def cell_table(self, snapshot: FleetSnapshot) -> Table:
        """Cells below full replication, worst first."""
        table = Table(title="🧩 Under-replicated Cells")
        table.add_column("Cell", justify="right", style="cyan")
        table.add_column("Replicas", justify="right")
        table.add_column("Health", justify="center")
        table.add_column("Claimants", style="blue")
        cells = sorted(
            (cell for cell in snapshot.cells if cell.health is not CellHealth.HEALTHY),
            key=lambda cell: (cell.replication_count, cell.cell_id),
        )
        for cell in cells:
            style = "red" if cell.health is CellHealth.EMPTY else "yellow"
            table.add_row(
                str(cell.cell_id),
                str(cell.replication_count),
                f"[{style}]{cell.health}[/{style}]",
                ", ".join(cell.claimants) or "-",
            )
        return table

    def display_snapshot(
        self, snapshot: FleetSnapshot, hide_offline: bool = False, cells: bool = False
    ) -> None:
        self.console.print(self.render_snapshot(snapshot, hide_offline))
        if cells:
            self.console.print(self.cell_table(snapshot))

    async def follow(
        self,
        monitor: FleetMonitor,
        live: Live,
        hide_offline: bool = False,
        updates: int = 0,
    ) -> int:
        """Render each newly published snapshot into ``live``; returns the count.

        The snapshot current at subscription time is already on screen and is
        not rendered again. ``updates=0`` follows until cancelled.
        """
        shown = 0
        stream = monitor.snapshots()
        try:
            await anext(stream)
            async for snapshot in stream:
                live.update(self.render_snapshot(snapshot, hide_offline))
                shown += 1
                if updates and shown >= updates:
                    break
        finally:
            await stream.aclose()
        return shown
