"""
Type definitions for the connection manager.

This module contains the dataclasses, enums and Protocol definitions
shared by the registry, prober, selector and peer-mesh tracker.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol


# =============================================================================
# Enums
# =============================================================================


class EndpointStatus(str, Enum):
    """Observed endpoint health."""

    CHECKING = "checking"
    ONLINE = "online"
    OFFLINE = "offline"


class PeerConnectionStatus(str, Enum):
    """Server-to-server link state as reported by a mesh member."""

    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


# =============================================================================
# Endpoint Types
# =============================================================================


@dataclass(slots=True)
class Endpoint:
    """
    A backend instance the client can connect to.

    Identity fields come from discovery (or the fallback list); the
    health fields are mutated in place by the prober.
    """

    id: str
    display_name: str
    region: str
    base_url: str
    stream_url: str
    status: EndpointStatus = EndpointStatus.CHECKING
    latency_ms: int | None = None
    last_checked_at: int | None = None
    is_local_dev: bool = False
    is_discovered: bool = False

    @property
    def is_online(self) -> bool:
        """Check if the last probe succeeded."""
        return self.status == EndpointStatus.ONLINE

    def reset_health(self) -> None:
        """Forget observed health, back to the initial checking state."""
        self.status = EndpointStatus.CHECKING
        self.latency_ms = None
        self.last_checked_at = None

    def apply_probe(self, result: "ProbeResult") -> None:
        """Record a probe outcome."""
        self.status = result.status
        self.latency_ms = result.latency_ms
        self.last_checked_at = result.checked_at

    def copy(self) -> "Endpoint":
        """Detached copy for read-only snapshots."""
        return replace(self)

    def to_cache_dict(self) -> dict[str, Any]:
        """Identity fields persisted in the endpoint cache."""
        return {
            "id": self.id,
            "displayName": self.display_name,
            "region": self.region,
            "baseUrl": self.base_url,
            "streamUrl": self.stream_url,
            "isLocalDev": self.is_local_dev,
            "isDiscovered": self.is_discovered,
        }

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any]) -> "Endpoint":
        """Rebuild an endpoint from cached identity; health is never cached."""
        return cls(
            id=str(data["id"]),
            display_name=str(data.get("displayName", data["id"])),
            region=str(data.get("region", "")),
            base_url=str(data.get("baseUrl", "")),
            stream_url=str(data.get("streamUrl", "")),
            is_local_dev=bool(data.get("isLocalDev", False)),
            is_discovered=bool(data.get("isDiscovered", False)),
        )


@dataclass(slots=True, frozen=True)
class ProbeResult:
    """Outcome of a single health probe."""

    endpoint_id: str
    status: EndpointStatus
    latency_ms: int | None
    checked_at: int

    @property
    def is_success(self) -> bool:
        """Check if the endpoint answered."""
        return self.status == EndpointStatus.ONLINE


# =============================================================================
# Preference Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class SelectionPreference:
    """
    The user's endpoint selection mode.

    `pinned_endpoint_id` only matters while `auto_fastest` is off.
    """

    auto_fastest: bool = False
    pinned_endpoint_id: str | None = None
    updated_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize for persistence."""
        return {
            "autoFastest": self.auto_fastest,
            "pinnedEndpointId": self.pinned_endpoint_id,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SelectionPreference":
        """Deserialize a persisted preference record."""
        pinned = data.get("pinnedEndpointId")
        return cls(
            auto_fastest=bool(data.get("autoFastest", False)),
            pinned_endpoint_id=str(pinned) if pinned else None,
            updated_at=int(data.get("updatedAt", 0)),
        )


# =============================================================================
# Peer Mesh Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class SyncLag:
    """How far an endpoint's replicated data is ahead of or behind its peers."""

    ahead: int = 0
    behind: int = 0
    syncing: bool = False

    @property
    def in_sync(self) -> bool:
        """Check if there is no lag in either direction."""
        return self.ahead == 0 and self.behind == 0


@dataclass(slots=True, frozen=True)
class PeerStatus:
    """One peer link as seen from the reporting endpoint."""

    id: str
    status: PeerConnectionStatus
    region: str = ""
    latency_ms: float | None = None
    sync_lag: SyncLag | None = None

    @property
    def is_connected(self) -> bool:
        """Check if the link is up."""
        return self.status == PeerConnectionStatus.CONNECTED


@dataclass(slots=True, frozen=True)
class PeerMeshSnapshot:
    """Peer list reported by one endpoint at one point in time."""

    server_id: str
    server_region: str
    peers: tuple[PeerStatus, ...] = field(default_factory=tuple)
    timestamp: int = 0

    @property
    def connected_count(self) -> int:
        """Number of connected peers."""
        return sum(1 for p in self.peers if p.is_connected)

    @property
    def total_peers(self) -> int:
        """Number of known peers."""
        return len(self.peers)

    @property
    def avg_latency_ms(self) -> float | None:
        """Mean latency over connected peers that reported one."""
        samples = [
            p.latency_ms for p in self.peers if p.is_connected and p.latency_ms is not None
        ]
        if not samples:
            return None
        return sum(samples) / len(samples)

    @property
    def health_percent(self) -> int:
        """Share of peers connected, 0-100."""
        if self.total_peers == 0:
            return 0
        return round(self.connected_count / self.total_peers * 100)


@dataclass(slots=True, frozen=True)
class SyncHealth:
    """Replication cursor reported by `/api/sync/health`."""

    is_primary: bool
    sync_cursor_position: int
    pending_sync_count: int = 0


# =============================================================================
# Protocols (Interfaces)
# =============================================================================


class KeyValueStore(Protocol):
    """Persistence port for cached endpoints and selection state."""

    def load(self, key: str, max_age_ms: int | None = None) -> Any | None:
        """Load a value, or None if missing or older than max_age_ms."""
        ...

    def save(self, key: str, value: Any) -> None:
        """Store a value with the current timestamp."""
        ...

    def delete(self, key: str) -> None:
        """Remove a value."""
        ...
