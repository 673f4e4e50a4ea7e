"""Peer mesh diagnostics and push feed."""

from meshlink.mesh.feed import ConnectionState, PeerFeed
from meshlink.mesh.peers import PeerMeshTracker, derive_sync_lag


__all__ = [
    "ConnectionState",
    "PeerFeed",
    "PeerMeshTracker",
    "derive_sync_lag",
]
