"""
Metrics collection for connection monitoring.

Tracks probe latencies per endpoint and counts sweeps, discoveries
and failovers with in-memory storage.
"""

import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass

from meshlink.config.constants import LATENCY_WINDOW_SIZE
from meshlink.core.types import ProbeResult


@dataclass
class LatencyStats:
    """Aggregated latency statistics."""

    min_ms: int = 0
    max_ms: int = 0
    avg_ms: float = 0.0
    p50_ms: int = 0
    p95_ms: int = 0
    count: int = 0


@dataclass
class ConnectionStats:
    """Connection manager activity counters."""

    sweeps: int = 0
    probes_ok: int = 0
    probes_failed: int = 0
    discoveries_ok: int = 0
    discoveries_failed: int = 0
    failovers: int = 0

    @property
    def probe_success_rate(self) -> float:
        """Share of probes that found the endpoint online."""
        total = self.probes_ok + self.probes_failed
        return self.probes_ok / total if total > 0 else 0.0


class MetricsCollector:
    """
    Collects and aggregates connection metrics.

    Features:
    - Rolling window latency tracking per endpoint
    - Counter-based event tracking
    """

    def __init__(
        self,
        latency_window_size: int = LATENCY_WINDOW_SIZE,
    ) -> None:
        """
        Initialize metrics collector.

        Args:
            latency_window_size: Number of samples to keep per endpoint.
        """
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._stats = ConnectionStats()
        self._start_time = time.time()

    def record_latency(self, name: str, latency_ms: int) -> None:
        """
        Record a latency measurement.

        Args:
            name: Series name, usually the endpoint id.
            latency_ms: Latency in milliseconds.
        """
        if name not in self._latencies:
            self._latencies[name] = deque(maxlen=self._window_size)

        self._latencies[name].append(latency_ms)

    def record_probe(self, result: ProbeResult) -> None:
        """Count a probe and keep its latency."""
        if result.is_success and result.latency_ms is not None:
            self._stats.probes_ok += 1
            self.record_latency(result.endpoint_id, result.latency_ms)
        else:
            self._stats.probes_failed += 1

    def record_sweep(self, results: Iterable[ProbeResult]) -> None:
        """Count a full sweep and each of its probes."""
        self._stats.sweeps += 1
        for result in results:
            self.record_probe(result)

    def record_discovery(self, success: bool) -> None:
        """Count a discovery attempt."""
        if success:
            self._stats.discoveries_ok += 1
        else:
            self._stats.discoveries_failed += 1

    def record_failover(self) -> None:
        """Count a change of the active endpoint."""
        self._stats.failovers += 1

    def get_latency_stats(self, name: str) -> LatencyStats:
        """
        Get latency statistics for a series.

        Args:
            name: Series name.

        Returns:
            LatencyStats with aggregated values.
        """
        samples = self._latencies.get(name)
        if not samples:
            return LatencyStats()

        sorted_samples = sorted(samples)
        n = len(sorted_samples)

        return LatencyStats(
            min_ms=sorted_samples[0],
            max_ms=sorted_samples[-1],
            avg_ms=sum(sorted_samples) / n,
            p50_ms=sorted_samples[n // 2],
            p95_ms=sorted_samples[min(int(n * 0.95), n - 1)],
            count=n,
        )

    def get_all_latency_stats(self) -> dict[str, LatencyStats]:
        """Get latency stats for all series."""
        return {name: self.get_latency_stats(name) for name in self._latencies}

    @property
    def stats(self) -> ConnectionStats:
        """Get activity counters."""
        return self._stats

    @property
    def uptime_seconds(self) -> float:
        """Get uptime in seconds."""
        return time.time() - self._start_time

    def to_dict(self) -> dict[str, object]:
        """
        Export all metrics as a dict.

        Returns:
            Dict representation of all metrics.
        """
        return {
            "uptime_seconds": self.uptime_seconds,
            "counters": {
                "sweeps": self._stats.sweeps,
                "probes_ok": self._stats.probes_ok,
                "probes_failed": self._stats.probes_failed,
                "discoveries_ok": self._stats.discoveries_ok,
                "discoveries_failed": self._stats.discoveries_failed,
                "failovers": self._stats.failovers,
            },
            "latencies": {
                name: {
                    "min": stats.min_ms,
                    "max": stats.max_ms,
                    "avg": stats.avg_ms,
                    "p50": stats.p50_ms,
                    "p95": stats.p95_ms,
                    "count": stats.count,
                }
                for name, stats in self.get_all_latency_stats().items()
            },
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._latencies.clear()
        self._stats = ConnectionStats()
        self._start_time = time.time()
