"""
Endpoint health probing.

Measures reachability and round-trip latency of endpoints. A sweep
probes every endpoint concurrently; each probe carries its own timeout
so one hung endpoint cannot hold back the others' results.
"""

import asyncio
import logging
from collections.abc import Sequence

from meshlink.api.client import MeshClient
from meshlink.config.constants import DEFAULT_PROBE_TIMEOUT
from meshlink.core.types import Endpoint, EndpointStatus, ProbeResult
from meshlink.utils.time import LatencyTimer, get_timestamp_ms


logger = logging.getLogger(__name__)


class HealthProber:
    """
    Probes endpoint health routes.

    Features:
    - Never raises: every failure becomes an offline result
    - Concurrent sweeps with per-probe timeouts
    - No overlapping sweeps (and no overlapping local probes)
    """

    def __init__(self, client: MeshClient, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        """
        Initialize prober.

        Args:
            client: Shared mesh client.
            timeout: Per-probe timeout in seconds.
        """
        self._client = client
        self._timeout = timeout
        self._sweep_in_progress = False
        self._local_in_progress = False

    async def probe(self, endpoint: Endpoint) -> ProbeResult:
        """
        Probe one endpoint.

        Args:
            endpoint: Endpoint to check.

        Returns:
            Online with latency on a 2xx, offline without latency otherwise.
        """
        try:
            with LatencyTimer() as timer:
                await asyncio.wait_for(
                    self._client.health(endpoint.base_url, timeout=self._timeout),
                    timeout=self._timeout,
                )
        except Exception as e:
            logger.debug(
                f"Probe failed: {type(e).__name__}: {e}", extra={"endpoint": endpoint.id}
            )
            return ProbeResult(
                endpoint_id=endpoint.id,
                status=EndpointStatus.OFFLINE,
                latency_ms=None,
                checked_at=get_timestamp_ms(),
            )

        return ProbeResult(
            endpoint_id=endpoint.id,
            status=EndpointStatus.ONLINE,
            latency_ms=timer.latency_ms,
            checked_at=get_timestamp_ms(),
        )

    async def sweep(self, endpoints: Sequence[Endpoint]) -> list[ProbeResult] | None:
        """
        Probe all endpoints concurrently.

        Returns:
            One result per endpoint in input order, or None if a sweep
            was already running.
        """
        if self._sweep_in_progress:
            logger.debug("Sweep already in progress, skipping")
            return None

        self._sweep_in_progress = True
        try:
            results = await asyncio.gather(*(self.probe(e) for e in endpoints))
        finally:
            self._sweep_in_progress = False

        online = sum(1 for r in results if r.is_success)
        logger.debug(f"Sweep complete: {online}/{len(results)} online")
        return list(results)

    async def probe_local(self, endpoint: Endpoint) -> ProbeResult | None:
        """
        Fast-path probe of the local-dev endpoint.

        Returns:
            The result, or None if the previous local probe is still running.
        """
        if self._local_in_progress:
            return None

        self._local_in_progress = True
        try:
            return await self.probe(endpoint)
        finally:
            self._local_in_progress = False

    @property
    def is_sweeping(self) -> bool:
        """Check if a full sweep is running."""
        return self._sweep_in_progress

    @property
    def timeout(self) -> float:
        """Per-probe timeout in seconds."""
        return self._timeout
