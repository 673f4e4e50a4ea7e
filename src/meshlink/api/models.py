"""
Pydantic models for mesh API responses.

These models provide type-safe parsing of endpoint responses
with automatic validation.
"""

from pydantic import BaseModel, Field

from meshlink.core.types import (
    PeerConnectionStatus,
    PeerMeshSnapshot,
    PeerStatus,
    SelectionPreference,
    SyncHealth,
    SyncLag,
)


class MeshServer(BaseModel):
    """Single mesh member listed by discovery."""

    id: str
    region: str = ""
    api_url: str = Field(alias="apiUrl")
    ws_url: str = Field(default="", alias="wsUrl")
    status: str = "offline"
    latency_ms: float | None = Field(default=None, alias="latencyMs")

    model_config = {"populate_by_name": True}

    @property
    def display_name(self) -> str:
        """Human-readable name derived from the id ("new-york" -> "New york")."""
        if not self.id:
            return self.id
        return self.id[0].upper() + self.id[1:].replace("-", " ")

    @property
    def is_local(self) -> bool:
        """Check if this member is a loopback development server."""
        return self.id == "local" or "localhost" in self.api_url


class MeshDiscoveryResponse(BaseModel):
    """`GET /api/mesh/servers` response."""

    self_id: str = Field(alias="selfId")
    self_region: str = Field(default="", alias="selfRegion")
    self_api_url: str = Field(default="", alias="selfApiUrl")
    self_ws_url: str = Field(default="", alias="selfWsUrl")
    servers: list[MeshServer]
    mesh_key_hash: str = Field(default="", alias="meshKeyHash")
    timestamp: int = 0

    model_config = {"populate_by_name": True}


class PeerSyncStatus(BaseModel):
    """Per-peer replication counters."""

    predictions_ahead: int = Field(default=0, ge=0, alias="predictionsAhead")
    predictions_behind: int = Field(default=0, ge=0, alias="predictionsBehind")
    preferences_ahead: int = Field(default=0, ge=0, alias="preferencesAhead")
    preferences_behind: int = Field(default=0, ge=0, alias="preferencesBehind")
    syncing: bool = False

    model_config = {"populate_by_name": True}

    def to_sync_lag(self) -> SyncLag:
        """Collapse the per-table counters into one lag value."""
        return SyncLag(
            ahead=self.predictions_ahead + self.preferences_ahead,
            behind=self.predictions_behind + self.preferences_behind,
            syncing=self.syncing,
        )


class PeerInfo(BaseModel):
    """Single peer entry in a peer mesh payload."""

    id: str
    region: str = ""
    status: PeerConnectionStatus
    latency_ms: float | None = Field(default=None, alias="latencyMs")
    sync_status: PeerSyncStatus | None = Field(default=None, alias="syncStatus")

    model_config = {"populate_by_name": True}

    def to_peer_status(self) -> PeerStatus:
        """Convert to the internal peer type."""
        return PeerStatus(
            id=self.id,
            region=self.region,
            status=self.status,
            latency_ms=self.latency_ms,
            sync_lag=self.sync_status.to_sync_lag() if self.sync_status else None,
        )


class PeerMeshResponse(BaseModel):
    """`GET /api/peers` response, also the shape of pushed peer updates."""

    server_id: str = Field(alias="serverId")
    server_region: str = Field(default="", alias="serverRegion")
    peers: list[PeerInfo] = Field(default_factory=list)
    connected_count: int | None = Field(default=None, alias="connectedCount")
    total_peers: int | None = Field(default=None, alias="totalPeers")
    timestamp: int = 0

    model_config = {"populate_by_name": True}

    def to_snapshot(self) -> PeerMeshSnapshot:
        """Convert to an immutable snapshot; counts are recomputed from peers."""
        return PeerMeshSnapshot(
            server_id=self.server_id,
            server_region=self.server_region,
            peers=tuple(p.to_peer_status() for p in self.peers),
            timestamp=self.timestamp,
        )


class SyncHealthResponse(BaseModel):
    """`GET /api/sync/health` response."""

    is_primary: bool = Field(default=False, alias="isPrimary")
    sync_cursor_position: int = Field(default=0, alias="syncCursorPosition")
    pending_sync_count: int = Field(default=0, ge=0, alias="pendingSyncCount")

    model_config = {"populate_by_name": True}

    def to_sync_health(self) -> SyncHealth:
        """Convert to the internal type."""
        return SyncHealth(
            is_primary=self.is_primary,
            sync_cursor_position=self.sync_cursor_position,
            pending_sync_count=self.pending_sync_count,
        )


class RemotePreferenceSnapshot(BaseModel):
    """
    Selection preference stored in the user's server-side profile.

    Read-only input to reconciliation; never mutated locally.
    """

    auto_fastest: bool | None = Field(default=None, alias="autoFastest")
    preferred_server: str | None = Field(default=None, alias="preferredServer")
    updated_at: int = Field(default=0, alias="updatedAt")

    model_config = {"populate_by_name": True, "frozen": True}

    def to_preference(self) -> SelectionPreference:
        """Whole-record conversion; absent fields take their defaults."""
        return SelectionPreference(
            auto_fastest=bool(self.auto_fastest),
            pinned_endpoint_id=self.preferred_server or None,
            updated_at=self.updated_at,
        )
