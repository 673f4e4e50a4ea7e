"""
Unit tests for peer mesh diagnostics.

Tests peer matching, pushed updates, sync health refresh and
sync lag derivation.
"""

import pytest

from meshlink.core.types import EndpointStatus, PeerConnectionStatus, SyncHealth, SyncLag
from meshlink.mesh.peers import PeerMeshTracker, derive_sync_lag
from tests.mocks.mesh import MockMeshClient, make_endpoint
from tests.mocks.websocket import MockPeerFeed, peer_entry


def peers_payload(server_id: str, *peers: dict[str, object]) -> dict[str, object]:
    return {"serverId": server_id, "serverRegion": "Test", "peers": list(peers), "timestamp": 1}


class TestDeriveSyncLag:
    """Tests for derive_sync_lag."""

    def test_relative_to_primary(self) -> None:
        """Test lag is measured against the primary's cursor."""
        endpoints = [
            make_endpoint("a", EndpointStatus.ONLINE, 10),
            make_endpoint("b", EndpointStatus.ONLINE, 10),
            make_endpoint("c", EndpointStatus.ONLINE, 10),
        ]
        health = {
            "a": SyncHealth(is_primary=False, sync_cursor_position=120),
            "b": SyncHealth(is_primary=True, sync_cursor_position=100),
            "c": SyncHealth(is_primary=False, sync_cursor_position=90, pending_sync_count=3),
        }

        lags = derive_sync_lag(endpoints, health)

        assert lags["a"] == SyncLag(ahead=20, behind=0, syncing=False)
        assert lags["b"] == SyncLag()
        assert lags["c"] == SyncLag(ahead=0, behind=10, syncing=True)

    def test_highest_cursor_without_primary(self) -> None:
        """Test the highest cursor is the reference when there is no primary."""
        endpoints = [
            make_endpoint("a", EndpointStatus.ONLINE, 10),
            make_endpoint("b", EndpointStatus.ONLINE, 10),
        ]
        health = {
            "a": SyncHealth(is_primary=False, sync_cursor_position=50),
            "b": SyncHealth(is_primary=False, sync_cursor_position=40),
        }

        lags = derive_sync_lag(endpoints, health)

        assert lags["a"] is not None and lags["a"].in_sync
        assert lags["b"] == SyncLag(behind=10)

    def test_offline_or_unreported_is_none(self) -> None:
        """Test endpoints without usable health have no lag."""
        endpoints = [
            make_endpoint("a", EndpointStatus.ONLINE, 10),
            make_endpoint("b", EndpointStatus.OFFLINE),
            make_endpoint("c", EndpointStatus.ONLINE, 10),
        ]
        health = {
            "a": SyncHealth(is_primary=True, sync_cursor_position=10),
            "b": SyncHealth(is_primary=False, sync_cursor_position=5),
        }

        lags = derive_sync_lag(endpoints, health)

        assert lags["b"] is None
        assert lags["c"] is None

    def test_nothing_reported(self) -> None:
        """Test no health data yields no lags."""
        assert derive_sync_lag([make_endpoint("a", EndpointStatus.ONLINE, 1)], {}) == {}


class TestPeerMeshTracker:
    """Tests for PeerMeshTracker."""

    @pytest.fixture
    def tracker(self, mock_client: MockMeshClient) -> PeerMeshTracker:
        """Tracker over the mock client."""
        return PeerMeshTracker(mock_client)  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_refresh_stores_snapshot(
        self, tracker: PeerMeshTracker, mock_client: MockMeshClient
    ) -> None:
        """Test a successful poll replaces the snapshot."""
        mock_client.peers["http://a.test"] = peers_payload(
            "a",
            peer_entry("b", latency_ms=10.0),
            peer_entry("c", status="disconnected", latency_ms=None),
        )

        snapshot = await tracker.refresh("http://a.test")

        assert snapshot is not None
        assert tracker.snapshot is snapshot
        assert snapshot.server_id == "a"
        assert snapshot.connected_count == 1
        assert snapshot.total_peers == 2
        assert snapshot.health_percent == 50
        assert snapshot.avg_latency_ms == 10.0

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_snapshot(
        self, tracker: PeerMeshTracker, mock_client: MockMeshClient
    ) -> None:
        """Test a failed poll leaves the previous snapshot in place."""
        mock_client.peers["http://a.test"] = peers_payload("a", peer_entry("b"))
        first = await tracker.refresh("http://a.test")

        assert await tracker.refresh("http://b.test") is None
        assert tracker.snapshot is first

    def test_pushed_update_bare(self, tracker: PeerMeshTracker) -> None:
        """Test a bare pushed payload replaces the snapshot."""
        feed = MockPeerFeed(tracker.apply_update)

        feed.inject_peer_update("a", [peer_entry("b"), peer_entry("c")])

        assert tracker.snapshot is not None
        assert [p.id for p in tracker.snapshot.peers] == ["b", "c"]

    def test_pushed_update_wrapped(self, tracker: PeerMeshTracker) -> None:
        """Test a `{"data": ...}` envelope is unwrapped."""
        feed = MockPeerFeed(tracker.apply_update)

        feed.inject_peer_update("a", [peer_entry("b", status="connecting")], wrapped=True)

        assert tracker.snapshot is not None
        assert tracker.snapshot.peers[0].status == PeerConnectionStatus.CONNECTING

    def test_malformed_update_ignored(self, tracker: PeerMeshTracker) -> None:
        """Test a malformed push leaves the snapshot unchanged."""
        tracker.apply_update(peers_payload("a", peer_entry("b")))
        before = tracker.snapshot

        assert tracker.apply_update({"unexpected": True}) is None
        assert tracker.apply_update(peers_payload("a", {"id": "b", "status": "bogus"})) is None
        assert tracker.snapshot is before

    def test_peer_sync_status(self, tracker: PeerMeshTracker) -> None:
        """Test per-peer replication counters collapse into one lag."""
        entry = peer_entry("b")
        entry["syncStatus"] = {
            "predictionsAhead": 2,
            "predictionsBehind": 0,
            "preferencesAhead": 1,
            "preferencesBehind": 4,
            "syncing": True,
        }

        snapshot = tracker.apply_update(peers_payload("a", entry))

        assert snapshot is not None
        assert snapshot.peers[0].sync_lag == SyncLag(ahead=3, behind=4, syncing=True)

    def test_match_by_id_then_name(self, tracker: PeerMeshTracker) -> None:
        """Test peers match on id first, then display name."""
        tracker.apply_update(peers_payload("x", peer_entry("SEOUL"), peer_entry("new york")))
        seoul = make_endpoint("seoul")
        nyc = make_endpoint("nyc")
        nyc.display_name = "New York"

        assert tracker.match(seoul).id == "SEOUL"  # type: ignore[union-attr]
        assert tracker.match(nyc).id == "new york"  # type: ignore[union-attr]
        assert tracker.match(make_endpoint("tokyo")) is None

    def test_match_without_snapshot(self, tracker: PeerMeshTracker) -> None:
        """Test matching before any snapshot returns None."""
        assert tracker.match(make_endpoint("a")) is None

    @pytest.mark.asyncio
    async def test_refresh_sync_health_targets(
        self, tracker: PeerMeshTracker, mock_client: MockMeshClient
    ) -> None:
        """Test only online and local-dev endpoints are queried."""
        endpoints = [
            make_endpoint("a", EndpointStatus.ONLINE, 10),
            make_endpoint("b", EndpointStatus.OFFLINE),
            make_endpoint("local", EndpointStatus.OFFLINE, is_local_dev=True),
        ]
        mock_client.sync_health["http://a.test"] = {"isPrimary": True, "syncCursorPosition": 7}

        health = await tracker.refresh_sync_health(endpoints)

        assert health == {"a": SyncHealth(is_primary=True, sync_cursor_position=7)}
        assert mock_client.count("get_sync_health", "http://b.test") == 0
        assert mock_client.count("get_sync_health", "http://local.test") == 1
        assert tracker.sync_lag_by_endpoint(endpoints)["a"] == SyncLag()

    def test_clear(self, tracker: PeerMeshTracker) -> None:
        """Test clear forgets everything."""
        tracker.apply_update(peers_payload("a", peer_entry("b")))

        tracker.clear()

        assert tracker.snapshot is None
        assert tracker.sync_health == {}
