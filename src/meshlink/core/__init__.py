"""Core module containing the event bus and shared type definitions."""

from meshlink.core.event_bus import Event, EventBus, EventType
from meshlink.core.types import (
    Endpoint,
    EndpointStatus,
    KeyValueStore,
    PeerConnectionStatus,
    PeerMeshSnapshot,
    PeerStatus,
    ProbeResult,
    SelectionPreference,
    SyncHealth,
    SyncLag,
)


__all__ = [
    "Endpoint",
    "EndpointStatus",
    "Event",
    "EventBus",
    "EventType",
    "KeyValueStore",
    "PeerConnectionStatus",
    "PeerMeshSnapshot",
    "PeerStatus",
    "ProbeResult",
    "SelectionPreference",
    "SyncHealth",
    "SyncLag",
]
