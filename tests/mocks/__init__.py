"""Mock implementations for testing."""

from tests.mocks.mesh import MockMeshClient
from tests.mocks.websocket import MockPeerFeed, peer_entry


__all__ = [
    "MockMeshClient",
    "MockPeerFeed",
    "peer_entry",
]
