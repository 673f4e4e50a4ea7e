"""
Mock mesh client for testing.

Provides a fully mocked mesh client that simulates endpoint
responses without network calls.
"""

import asyncio
from typing import Any

from meshlink.api.client import MeshAPIError, MeshClientError
from meshlink.api.models import (
    MeshDiscoveryResponse,
    PeerMeshResponse,
    RemotePreferenceSnapshot,
    SyncHealthResponse,
)
from meshlink.core.types import Endpoint, EndpointStatus


OSAKA_URL = "http://osaka.test"
SEOUL_URL = "http://seoul.test"
NYC_URL = "http://nyc.test"
LOCAL_URL = "http://localhost:3001"


class MockMeshClient:
    """
    Mock mesh client for testing.

    Endpoints are addressed by base URL. Health behaviour per URL is one of:
    a delay in seconds (online after the delay), "offline" (503), "down"
    (network error) or "hang" (never answers).
    """

    def __init__(self) -> None:
        """Initialize mock client."""
        self.health_behaviour: dict[str, float | str] = {}
        self.discovery: dict[str, dict[str, Any]] = {}
        self.peers: dict[str, dict[str, Any]] = {}
        self.sync_health: dict[str, dict[str, Any]] = {}
        self.remote_preference: dict[str, Any] | None = None
        self.fail_preference_writes = False
        self.discovery_delay = 0.0

        self.calls: list[tuple[str, str]] = []
        self.preference_writes: list[dict[str, Any]] = []
        self.closed = False

    # =========================================================================
    # Configuration helpers
    # =========================================================================

    def set_online(self, base_url: str, delay: float = 0.0) -> None:
        """Answer health probes after `delay` seconds."""
        self.health_behaviour[base_url] = delay

    def set_offline(self, base_url: str) -> None:
        """Answer health probes with a 503."""
        self.health_behaviour[base_url] = "offline"

    def set_down(self, base_url: str) -> None:
        """Fail health probes with a network error."""
        self.health_behaviour[base_url] = "down"

    def set_hanging(self, base_url: str) -> None:
        """Never answer health probes."""
        self.health_behaviour[base_url] = "hang"

    def set_discovery(self, base_url: str, servers: list[dict[str, Any]], self_id: str = "") -> None:
        """Serve a discovery payload from one member."""
        self.discovery[base_url] = {
            "selfId": self_id or (servers[0]["id"] if servers else "unknown"),
            "selfRegion": "",
            "servers": servers,
            "timestamp": 1704067200000,
        }

    def count(self, method: str, base_url: str | None = None) -> int:
        """Number of recorded calls of a method, optionally for one URL."""
        return sum(
            1 for m, url in self.calls if m == method and (base_url is None or url == base_url)
        )

    # =========================================================================
    # MeshClient interface
    # =========================================================================

    async def get_mesh_servers(self, base_url: str) -> MeshDiscoveryResponse:
        """Mock discovery."""
        self.calls.append(("get_mesh_servers", base_url))
        if self.discovery_delay:
            await asyncio.sleep(self.discovery_delay)
        payload = self.discovery.get(base_url)
        if payload is None:
            raise MeshClientError(f"Network error: cannot connect to {base_url}")
        return MeshDiscoveryResponse.model_validate(payload)

    async def health(self, base_url: str, timeout: float = 5.0) -> None:
        """Mock health route."""
        self.calls.append(("health", base_url))
        behaviour = self.health_behaviour.get(base_url, "down")

        if behaviour == "hang":
            await asyncio.Event().wait()
        if behaviour == "down":
            raise MeshClientError("Network error: connection refused")
        if behaviour == "offline":
            raise MeshAPIError("Health check failed: 503", status=503)

        delay = float(behaviour)
        if delay > 0:
            await asyncio.sleep(delay)

    async def get_peers(self, base_url: str) -> PeerMeshResponse:
        """Mock peer list."""
        self.calls.append(("get_peers", base_url))
        payload = self.peers.get(base_url)
        if payload is None:
            raise MeshAPIError("API error 404: not found", status=404)
        return PeerMeshResponse.model_validate(payload)

    async def get_sync_health(self, base_url: str) -> SyncHealthResponse:
        """Mock sync health."""
        self.calls.append(("get_sync_health", base_url))
        payload = self.sync_health.get(base_url)
        if payload is None:
            raise MeshAPIError("API error 404: not found", status=404)
        return SyncHealthResponse.model_validate(payload)

    async def get_preferences(self, base_url: str, session_token: str) -> RemotePreferenceSnapshot:
        """Mock profile read."""
        self.calls.append(("get_preferences", base_url))
        return RemotePreferenceSnapshot.model_validate(self.remote_preference or {})

    async def update_preferences(
        self,
        base_url: str,
        session_token: str,
        changes: dict[str, Any],
    ) -> None:
        """Mock profile write."""
        self.calls.append(("update_preferences", base_url))
        if self.fail_preference_writes:
            raise MeshAPIError("API error 500: internal error", status=500)
        self.preference_writes.append(dict(changes))

    async def close(self) -> None:
        """Mock close."""
        self.closed = True


def make_endpoint(
    endpoint_id: str,
    status: EndpointStatus = EndpointStatus.CHECKING,
    latency_ms: int | None = None,
    last_checked_at: int | None = None,
    is_local_dev: bool = False,
) -> Endpoint:
    """Build an endpoint with test URLs derived from the id."""
    return Endpoint(
        id=endpoint_id,
        display_name=endpoint_id.capitalize(),
        region="Test",
        base_url=f"http://{endpoint_id}.test",
        stream_url=f"ws://{endpoint_id}.test/ws",
        status=status,
        latency_ms=latency_ms,
        last_checked_at=last_checked_at,
        is_local_dev=is_local_dev,
    )
