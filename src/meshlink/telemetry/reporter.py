"""
CLI reporter for real-time status display.

Renders a boxed terminal panel with the endpoint table, the active
selection and peer mesh health.
"""

import asyncio
import sys
from collections.abc import Sequence
from datetime import timedelta
from typing import TextIO

from meshlink import __version__
from meshlink.core.types import Endpoint, EndpointStatus, PeerMeshSnapshot
from meshlink.telemetry.metrics import MetricsCollector


class CLIReporter:
    """
    Real-time CLI panel for monitoring.

    Displays:
    - Environment, uptime and selection mode
    - One row per endpoint with status and latency
    - Peer mesh health
    """

    # Box drawing characters
    BOX_TL = "\u2554"  # ╔
    BOX_TR = "\u2557"  # ╗
    BOX_BL = "\u255a"  # ╚
    BOX_BR = "\u255d"  # ╝
    BOX_H = "\u2550"  # ═
    BOX_V = "\u2551"  # ║
    BOX_LT = "\u2560"  # ╠
    BOX_RT = "\u2563"  # ╣
    THIN_V = "\u2502"  # │

    STATUS_LABELS = {
        EndpointStatus.ONLINE: "ONLINE",
        EndpointStatus.OFFLINE: "OFFLINE",
        EndpointStatus.CHECKING: "CHECKING",
    }

    def __init__(
        self,
        metrics: MetricsCollector,
        width: int = 72,
        output: TextIO | None = None,
        environment: str = "production",
    ) -> None:
        """
        Initialize CLI reporter.

        Args:
            metrics: Metrics collector instance.
            width: Panel width in characters.
            output: Output stream (default: stdout).
            environment: Environment name shown in the header.
        """
        self._metrics = metrics
        self._width = width
        self._output = output or sys.stdout
        self._environment = environment
        self._running = False
        self._task: asyncio.Task[None] | None = None

        self._endpoints: tuple[Endpoint, ...] = ()
        self._active_id: str | None = None
        self._auto_fastest = False
        self._peer_mesh: PeerMeshSnapshot | None = None

    def set_state(
        self,
        endpoints: Sequence[Endpoint] = (),
        active_id: str | None = None,
        auto_fastest: bool = False,
        peer_mesh: PeerMeshSnapshot | None = None,
    ) -> None:
        """Update display state."""
        self._endpoints = tuple(endpoints)
        self._active_id = active_id
        self._auto_fastest = auto_fastest
        self._peer_mesh = peer_mesh

    def _format_uptime(self, seconds: float) -> str:
        """Format uptime as HH:MM:SS."""
        td = timedelta(seconds=int(seconds))
        hours, remainder = divmod(int(td.total_seconds()), 3600)
        minutes, secs = divmod(remainder, 60)
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"

    def _pad(self, text: str, width: int) -> str:
        """Pad text to width."""
        return text.ljust(width)[:width]

    def _line(self, content: str) -> str:
        """Create a line with borders."""
        inner_width = self._width - 2
        return f"{self.BOX_V}{self._pad(content, inner_width)}{self.BOX_V}"

    def _divider(self) -> str:
        """Create a horizontal divider."""
        return f"{self.BOX_LT}{self.BOX_H * (self._width - 2)}{self.BOX_RT}"

    def _endpoint_row(self, endpoint: Endpoint) -> str:
        marker = "*" if endpoint.id == self._active_id else " "
        status = self.STATUS_LABELS[endpoint.status]
        latency = f"{endpoint.latency_ms}ms" if endpoint.latency_ms is not None else "---"

        stats = self._metrics.get_latency_stats(endpoint.id)
        avg = f"{stats.avg_ms:.0f}ms" if stats.count > 0 else "---"

        name = endpoint.display_name + (" (dev)" if endpoint.is_local_dev else "")
        return (
            f" {marker} {name:<18}{self.THIN_V} {endpoint.region:<10}{self.THIN_V} "
            f"{status:<9}{self.THIN_V} {latency:>7} {self.THIN_V} avg {avg:>7}"
        )

    def render(self) -> str:
        """
        Render the status panel.

        Returns:
            Formatted panel string.
        """
        stats = self._metrics.stats
        uptime = self._format_uptime(self._metrics.uptime_seconds)
        mode = "AUTO-FASTEST" if self._auto_fastest else "MANUAL"

        lines = []

        lines.append(f"{self.BOX_TL}{self.BOX_H * (self._width - 2)}{self.BOX_TR}")
        header = f"  MESHLINK v{__version__} | {self._environment.upper()} | {mode}"
        lines.append(self._line(header))
        lines.append(self._divider())

        status = (
            f"  Uptime: {uptime}  |  Active: {self._active_id or '---'}  |  "
            f"Failovers: {stats.failovers}"
        )
        lines.append(self._line(status))
        lines.append(self._divider())

        header_row = (
            f"   {'ENDPOINT':<18}{self.THIN_V} {'REGION':<10}{self.THIN_V} "
            f"{'STATUS':<9}{self.THIN_V} {'LATENCY':>7} {self.THIN_V} {'WINDOW':>11}"
        )
        lines.append(self._line(header_row))

        if not self._endpoints:
            lines.append(self._line("   no endpoints known"))
        for endpoint in self._endpoints:
            lines.append(self._line(self._endpoint_row(endpoint)))

        lines.append(self._divider())

        mesh = self._peer_mesh
        if mesh is None:
            mesh_line = "  Peer mesh: ---"
        else:
            avg = f"{mesh.avg_latency_ms:.0f}ms" if mesh.avg_latency_ms is not None else "---"
            mesh_line = (
                f"  Peer mesh via {mesh.server_id}: {mesh.connected_count}/{mesh.total_peers} "
                f"connected ({mesh.health_percent}%)  |  avg {avg}"
            )
        lines.append(self._line(mesh_line))

        counters = (
            f"  Sweeps: {stats.sweeps}  |  Probe failures: {stats.probes_failed}  |  "
            f"Discoveries: {stats.discoveries_ok}/{stats.discoveries_ok + stats.discoveries_failed}"
        )
        lines.append(self._line(counters))

        lines.append(f"{self.BOX_BL}{self.BOX_H * (self._width - 2)}{self.BOX_BR}")

        return "\n".join(lines)

    def display(self) -> None:
        """Display the panel once."""
        # Clear screen and move cursor to top
        self._output.write("\033[2J\033[H")
        self._output.write(self.render())
        self._output.write("\n")
        self._output.flush()

    async def run(self, interval: float = 1.0) -> None:
        """
        Run continuous display updates.

        Args:
            interval: Update interval in seconds.
        """
        self._running = True

        while self._running:
            self.display()
            await asyncio.sleep(interval)

    def start(self, interval: float = 1.0) -> asyncio.Task[None]:
        """Start the reporter as a background task."""
        self._task = asyncio.create_task(self.run(interval))
        return self._task

    def stop(self) -> None:
        """Stop the reporter."""
        self._running = False
        if self._task:
            self._task.cancel()

    def print_summary(self) -> None:
        """Print a final summary."""
        stats = self._metrics.stats
        uptime = self._format_uptime(self._metrics.uptime_seconds)

        print("\n" + "=" * 50)
        print("  SESSION SUMMARY")
        print("=" * 50)
        print(f"  Uptime: {uptime}")
        print(f"  Final endpoint: {self._active_id or '---'}")
        print()
        print("  PROBES:")
        print(f"    Sweeps:       {stats.sweeps:,}")
        print(f"    Online:       {stats.probes_ok:,}")
        print(f"    Offline:      {stats.probes_failed:,}")
        print(f"    Success rate: {stats.probe_success_rate:.1%}")
        print()
        print("  DISCOVERY:")
        print(f"    Succeeded:    {stats.discoveries_ok:,}")
        print(f"    Failed:       {stats.discoveries_failed:,}")
        print(f"    Failovers:    {stats.failovers:,}")
        print("=" * 50)
