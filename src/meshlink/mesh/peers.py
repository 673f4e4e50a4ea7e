"""
Peer mesh diagnostics.

Read-only view of which mesh members see each other as connected peers,
and how far each member's replicated data lags behind the others. Nothing
here feeds endpoint selection.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from meshlink.api.client import MeshClient, MeshClientError, unwrap_data
from meshlink.api.models import PeerMeshResponse
from meshlink.core.types import Endpoint, PeerMeshSnapshot, PeerStatus, SyncHealth, SyncLag


logger = logging.getLogger(__name__)


def derive_sync_lag(
    endpoints: Sequence[Endpoint],
    health_by_id: Mapping[str, SyncHealth],
) -> dict[str, SyncLag | None]:
    """
    Compare replication cursors across endpoints.

    The reference cursor is the primary's, or the highest reported one when
    no endpoint claims to be primary. Endpoints that are offline or did not
    report get None.
    """
    reported = [health_by_id[e.id] for e in endpoints if e.id in health_by_id]
    if not reported:
        return {}

    primary = next((h for h in reported if h.is_primary), None)
    if primary is not None:
        reference = primary.sync_cursor_position
    else:
        reference = max(h.sync_cursor_position for h in reported)

    lags: dict[str, SyncLag | None] = {}
    for endpoint in endpoints:
        health = health_by_id.get(endpoint.id)
        if health is None or not endpoint.is_online:
            lags[endpoint.id] = None
            continue

        delta = health.sync_cursor_position - reference
        lags[endpoint.id] = SyncLag(
            ahead=max(delta, 0),
            behind=max(-delta, 0),
            syncing=health.pending_sync_count > 0,
        )

    return lags


class PeerMeshTracker:
    """
    Tracks the peer mesh as reported by the active endpoint.

    The snapshot is replaced wholesale by either a poll (`refresh`) or a
    pushed update (`apply_update`). Failures keep the last snapshot.
    """

    def __init__(self, client: MeshClient) -> None:
        self._client = client
        self._snapshot: PeerMeshSnapshot | None = None
        self._sync_health: dict[str, SyncHealth] = {}
        self._in_progress = False

    @property
    def snapshot(self) -> PeerMeshSnapshot | None:
        """Last known peer mesh, if any."""
        return self._snapshot

    @property
    def sync_health(self) -> dict[str, SyncHealth]:
        """Last sync health per endpoint id."""
        return dict(self._sync_health)

    async def fetch(self, base_url: str) -> PeerMeshSnapshot | None:
        """
        Fetch the peer list from one endpoint without storing it.

        Returns:
            The snapshot, or None on failure.
        """
        try:
            response = await self._client.get_peers(base_url)
        except MeshClientError as e:
            logger.debug(f"Peer mesh fetch from {base_url} failed: {e}")
            return None
        return response.to_snapshot()

    async def refresh(self, base_url: str) -> PeerMeshSnapshot | None:
        """
        Poll the peer list from the active endpoint and store it.

        Overlapping refreshes are skipped.
        """
        if self._in_progress:
            return None

        self._in_progress = True
        try:
            snapshot = await self.fetch(base_url)
        finally:
            self._in_progress = False

        if snapshot is not None:
            self._snapshot = snapshot
        return snapshot

    def store(self, snapshot: PeerMeshSnapshot) -> None:
        """Replace the current snapshot."""
        self._snapshot = snapshot

    def apply_update(self, payload: Any) -> PeerMeshSnapshot | None:
        """
        Replace the snapshot from a pushed update.

        Args:
            payload: Decoded message, bare or wrapped in `{"data": ...}`.

        Returns:
            The new snapshot, or None if the payload was not a peer update.
        """
        try:
            response = PeerMeshResponse.model_validate(unwrap_data(payload))
        except ValidationError as e:
            logger.debug(f"Ignoring malformed peer update: {e.error_count()} errors")
            return None

        self._snapshot = response.to_snapshot()
        return self._snapshot

    def match(self, endpoint: Endpoint) -> PeerStatus | None:
        """
        Find the peer record for a registry endpoint.

        Matches the id first, then the display name, both case-insensitive.
        An unmatched endpoint is normal and returns None.
        """
        if self._snapshot is None:
            return None

        endpoint_id = endpoint.id.lower()
        for peer in self._snapshot.peers:
            if peer.id.lower() == endpoint_id:
                return peer

        name = endpoint.display_name.lower()
        for peer in self._snapshot.peers:
            if peer.id.lower() == name:
                return peer

        return None

    async def refresh_sync_health(self, endpoints: Sequence[Endpoint]) -> dict[str, SyncHealth]:
        """
        Fetch replication cursors from reachable endpoints concurrently.

        Only online endpoints and the local-dev endpoint are queried.
        """
        targets = [e for e in endpoints if e.is_online or e.is_local_dev]

        async def fetch_one(endpoint: Endpoint) -> tuple[str, SyncHealth | None]:
            try:
                response = await self._client.get_sync_health(endpoint.base_url)
            except MeshClientError as e:
                logger.debug(f"Sync health from {endpoint.id} failed: {e}")
                return endpoint.id, None
            return endpoint.id, response.to_sync_health()

        results = await asyncio.gather(*(fetch_one(e) for e in targets))
        self._sync_health = {eid: h for eid, h in results if h is not None}
        return dict(self._sync_health)

    def sync_lag_by_endpoint(self, endpoints: Sequence[Endpoint]) -> dict[str, SyncLag | None]:
        """Lag per endpoint from the last sync health refresh."""
        return derive_sync_lag(endpoints, self._sync_health)

    def clear(self) -> None:
        """Forget all peer and sync data."""
        self._snapshot = None
        self._sync_health = {}
