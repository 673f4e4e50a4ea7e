"""Mesh REST API client and response models."""

from meshlink.api.client import MeshAPIError, MeshClient, MeshClientError
from meshlink.api.models import (
    MeshDiscoveryResponse,
    MeshServer,
    PeerMeshResponse,
    RemotePreferenceSnapshot,
    SyncHealthResponse,
)


__all__ = [
    "MeshAPIError",
    "MeshClient",
    "MeshClientError",
    "MeshDiscoveryResponse",
    "MeshServer",
    "PeerMeshResponse",
    "RemotePreferenceSnapshot",
    "SyncHealthResponse",
]
