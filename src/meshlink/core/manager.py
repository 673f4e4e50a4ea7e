"""
Connection manager orchestrator.

Owns the endpoint registry, the selection preference and the active
endpoint id, and runs discovery, health sweeps, selection and the peer
mesh feed on one event loop.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from meshlink.api.client import MeshClient
from meshlink.api.models import RemotePreferenceSnapshot
from meshlink.config.constants import ACTIVE_ENDPOINT_KEY
from meshlink.config.settings import Settings
from meshlink.core.event_bus import EventBus, EventType, make_event
from meshlink.core.types import (
    Endpoint,
    KeyValueStore,
    PeerMeshSnapshot,
    SelectionPreference,
    SyncLag,
)
from meshlink.discovery.discoverer import Discoverer, fallback_endpoints
from meshlink.health.prober import HealthProber
from meshlink.mesh.feed import PeerFeed
from meshlink.mesh.peers import PeerMeshTracker
from meshlink.registry.registry import ServerRegistry
from meshlink.registry.storage import JsonFileStore, MemoryStore
from meshlink.selection.failover import ActiveEndpointCallback, FailoverNotifier
from meshlink.selection.preference import (
    PreferenceSync,
    load_preference,
    reconcile,
    save_preference,
)
from meshlink.selection.selector import fastest_endpoint, select_active
from meshlink.telemetry.metrics import MetricsCollector
from meshlink.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ManagerSnapshot:
    """Detached view of the manager state for display."""

    active_id: str | None
    auto_fastest: bool
    pinned_endpoint_id: str | None
    endpoints: tuple[Endpoint, ...]
    fastest_id: str | None
    peer_mesh: PeerMeshSnapshot | None
    generation: int

    @property
    def active_endpoint(self) -> Endpoint | None:
        """The active endpoint, if it is registered."""
        for endpoint in self.endpoints:
            if endpoint.id == self.active_id:
                return endpoint
        return None


class ConnectionManager:
    """
    Multi-endpoint connection manager.

    Manages the complete lifecycle of:
    - Endpoint discovery and the endpoint cache
    - Periodic health sweeps (plus a fast local-dev sweep in development)
    - Active endpoint selection and failover notification
    - Preference reconciliation with the user's profile
    - Peer mesh diagnostics
    """

    def __init__(
        self,
        settings: Settings,
        client: MeshClient | None = None,
        store: KeyValueStore | None = None,
        event_bus: EventBus | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize the manager and restore persisted state.

        Args:
            settings: Application settings.
            client: Shared mesh client; one is created and owned if omitted.
            store: Persistence port; defaults to the configured cache file or memory.
            event_bus: Bus to publish state changes on.
            metrics: Metrics collector.
        """
        self._settings = settings

        self._owns_client = client is None
        self._client = client or MeshClient(request_timeout=settings.request_timeout)

        if store is None:
            store = JsonFileStore(settings.cache_path) if settings.cache_path else MemoryStore()
        self._store = store

        # Infrastructure
        self._event_bus = event_bus or EventBus()
        self._metrics = metrics or MetricsCollector()

        # Components
        self._registry = ServerRegistry(
            store=self._store,
            endpoints=fallback_endpoints(settings),
            cache_ttl_ms=settings.cache_ttl_ms,
        )
        self._discoverer = Discoverer.from_settings(self._client, settings)
        self._prober = HealthProber(self._client, timeout=settings.probe_timeout)
        self._peers = PeerMeshTracker(self._client)
        self._notifier = FailoverNotifier()
        self._preference_sync = PreferenceSync(
            client=self._client,
            base_url=lambda: self.active_base_url,
            debounce=settings.preference_debounce,
        )
        self._feed: PeerFeed | None = None

        # Owned state
        self._preference = SelectionPreference()
        self._active_id: str | None = None

        # Lifecycle
        self._running = False
        self._closed = False
        self._discovering = False
        self._sweep_pending = False
        self._tasks: set[asyncio.Task[Any]] = set()

        self._restore_state()

    def _restore_state(self) -> None:
        """Load the endpoint cache, preference and last active id."""
        self._registry.load_cache()

        stored = load_preference(self._store)
        if stored is not None:
            self._preference = stored

        active = self._store.load(ACTIVE_ENDPOINT_KEY)
        if isinstance(active, str) and active in self._registry:
            self._active_id = active
            if stored is None:
                self._preference = SelectionPreference(pinned_endpoint_id=active)

        self._reselect()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start discovery, health sweeps and the optional peer feed."""
        if self._running:
            return
        if self._closed:
            raise RuntimeError("ConnectionManager was stopped and cannot be restarted")

        self._running = True
        settings = self._settings

        logger.info(
            f"Starting connection manager ({settings.environment.value}, "
            f"{len(self._registry)} endpoints, active={self._active_id})"
        )

        self._spawn(self._run_periodic("discovery", self.discover, settings.discovery_interval, 0.0))
        self._spawn(self._run_once("initial sweep", self.refresh_health, settings.initial_sweep_delay))
        self._spawn(
            self._run_periodic(
                "sweep", self.refresh_health, settings.sweep_interval, settings.sweep_interval
            )
        )

        if settings.is_development:
            self._spawn(
                self._run_periodic(
                    "local sweep",
                    self.refresh_local,
                    settings.local_sweep_interval,
                    settings.local_sweep_interval,
                )
            )

        if settings.peer_feed_enabled:
            self._start_feed()

        self._event_bus.publish_sync(make_event(EventType.STARTED, self._active_id, source="manager"))

    async def stop(self) -> None:
        """
        Cancel all timers and in-flight work.

        Nothing that resolves after this point is applied to the state.
        """
        if self._closed:
            return

        logger.info("Stopping connection manager...")
        self._closed = True
        self._running = False

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._feed is not None:
            await self._feed.stop()
            self._feed = None

        await self._preference_sync.close()

        self._event_bus.publish_sync(make_event(EventType.STOPPED, self._active_id, source="manager"))

        if self._owns_client:
            await self._client.close()

        logger.info("Connection manager stopped")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        """Run a coroutine as a task cancelled by `stop()`."""
        if self._closed:
            coro.close()
            return None

        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_once(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        delay: float,
    ) -> None:
        await asyncio.sleep(delay)
        try:
            await func()
        except Exception as e:
            logger.error(f"{name} failed: {e}", exc_info=True)

    async def _run_periodic(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval: float,
        initial_delay: float,
    ) -> None:
        await asyncio.sleep(initial_delay)
        while self._running:
            try:
                await func()
            except Exception as e:
                logger.error(f"{name} failed: {e}", exc_info=True)
            await asyncio.sleep(interval)

    # =========================================================================
    # Discovery & Health
    # =========================================================================

    async def discover(self) -> bool:
        """
        Re-discover the endpoint set.

        On success the registry is replaced, the selection re-run and a
        fresh sweep scheduled. On failure the current set is kept.

        Returns:
            True if a new endpoint set was applied.
        """
        if self._discovering:
            return False

        self._discovering = True
        try:
            endpoints = await self._discoverer.discover()
        finally:
            self._discovering = False

        if self._closed:
            return False

        if endpoints is None:
            self._metrics.record_discovery(False)
            await self._event_bus.publish(
                make_event(EventType.DISCOVERY_FAILED, len(self._registry), source="discovery")
            )
            return False

        self._metrics.record_discovery(True)
        self._registry.replace(endpoints)
        self._reselect()

        await self._event_bus.publish(
            make_event(EventType.ENDPOINTS_REPLACED, self._registry.snapshot(), source="discovery")
        )

        if self._running:
            self._spawn(self.refresh_health())

        return True

    async def refresh_health(self) -> bool:
        """
        Run a full health sweep and apply it.

        Results measured against an endpoint set that has since been
        replaced are dropped.

        Returns:
            True if results were applied.
        """
        generation = self._registry.generation
        results = await self._prober.sweep(self._registry.endpoints)

        if results is None:
            # Another sweep is running; run again once it finishes
            self._sweep_pending = True
            return False

        if self._closed:
            return False

        applied = self._registry.apply_probes(results, generation)
        if applied:
            self._metrics.record_sweep(results)
            self._reselect()
            await self._event_bus.publish(
                make_event(EventType.SWEEP_COMPLETE, self._registry.snapshot(), source="prober")
            )
            await self._refresh_peer_mesh()

        if self._sweep_pending and self._running:
            self._sweep_pending = False
            self._spawn(self.refresh_health())

        return applied > 0

    async def refresh_local(self) -> bool:
        """
        Probe only the local-dev endpoint.

        Returns:
            True if a result was applied.
        """
        endpoint = self._registry.local_dev
        if endpoint is None:
            return False

        generation = self._registry.generation
        result = await self._prober.probe_local(endpoint)
        if result is None or self._closed or generation != self._registry.generation:
            return False

        self._registry.apply_probe(result)
        self._metrics.record_probe(result)
        self._reselect()
        return True

    async def _refresh_peer_mesh(self) -> None:
        """Poll peers from the active endpoint and sync health from all reachable ones."""
        endpoint = self.active_endpoint
        if endpoint is not None and (endpoint.is_online or endpoint.is_local_dev):
            snapshot = await self._peers.fetch(endpoint.base_url)
            if self._closed:
                return
            if snapshot is not None:
                self._peers.store(snapshot)
                await self._event_bus.publish(
                    make_event(EventType.PEER_MESH_UPDATED, snapshot, source="peers")
                )

        if not self._closed:
            await self._peers.refresh_sync_health(self._registry.endpoints)

    # =========================================================================
    # Peer Feed
    # =========================================================================

    def _start_feed(self) -> None:
        endpoint = self.active_endpoint
        if endpoint is None or not endpoint.stream_url:
            logger.info("Peer feed enabled but the active endpoint has no stream URL")
            return

        self._feed = PeerFeed(endpoint.stream_url, self._on_peer_update)
        self._spawn(self._feed.run())

    def _on_peer_update(self, payload: Any) -> None:
        """Handle a pushed peer mesh update."""
        if self._closed:
            return

        snapshot = self._peers.apply_update(payload)
        if snapshot is not None:
            self._event_bus.publish_sync(
                make_event(EventType.PEER_MESH_UPDATED, snapshot, source="feed")
            )

    # =========================================================================
    # Selection
    # =========================================================================

    def _reselect(self) -> str:
        """Re-run selection and propagate a change of the active id."""
        previous = self._active_id
        new_id = select_active(
            self._registry.endpoints,
            self._preference,
            previous,
            self._settings.default_endpoint_id,
        )

        if new_id == previous:
            return new_id

        self._active_id = new_id
        self._store.save(ACTIVE_ENDPOINT_KEY, new_id)

        if previous is not None:
            self._metrics.record_failover()
            logger.info(f"Active endpoint changed: {previous} -> {new_id}")

        self._event_bus.publish_sync(
            make_event(
                EventType.ACTIVE_ENDPOINT_CHANGED,
                {"previous": previous, "active": new_id},
                source="selector",
            )
        )
        self._notifier.notify(previous, new_id)

        endpoint = self._registry.get(new_id)
        if self._feed is not None and endpoint is not None and endpoint.stream_url:
            self._spawn(self._feed.retarget(endpoint.stream_url))

        return new_id

    def _set_preference(self, preference: SelectionPreference, push: bool = True) -> None:
        self._preference = preference
        save_preference(self._store, preference)
        self._event_bus.publish_sync(
            make_event(EventType.PREFERENCE_CHANGED, preference, source="preference")
        )
        self._reselect()

        if push and not self._closed:
            self._preference_sync.schedule_push(preference)

    def _next_timestamp(self) -> int:
        # Local writes must order after the record they replace
        return max(get_timestamp_ms(), self._preference.updated_at + 1)

    def pin_endpoint(self, endpoint_id: str) -> bool:
        """
        Select an endpoint manually.

        Turns auto-fastest off in the same step.

        Returns:
            False if the endpoint is not registered.
        """
        if endpoint_id not in self._registry:
            logger.warning(f"Cannot pin unknown endpoint {endpoint_id!r}")
            return False

        self._set_preference(
            SelectionPreference(
                auto_fastest=False,
                pinned_endpoint_id=endpoint_id,
                updated_at=self._next_timestamp(),
            )
        )
        return True

    def set_auto_fastest(self, enabled: bool) -> None:
        """
        Toggle auto-fastest selection.

        Enabling re-selects immediately. Disabling pins whatever is active
        at that moment, so the selection does not jump.
        """
        if enabled == self._preference.auto_fastest:
            return

        if enabled:
            pinned = self._preference.pinned_endpoint_id
        else:
            pinned = self._active_id

        self._set_preference(
            SelectionPreference(
                auto_fastest=enabled,
                pinned_endpoint_id=pinned,
                updated_at=self._next_timestamp(),
            )
        )

    def apply_remote_preference(
        self,
        remote: SelectionPreference | RemotePreferenceSnapshot,
    ) -> bool:
        """
        Reconcile with a preference record from the user's profile.

        Returns:
            True if the remote record won and was applied.
        """
        merged = reconcile(self._preference, remote)
        if merged is self._preference:
            return False

        logger.info(
            f"Applying newer remote preference (auto={merged.auto_fastest}, "
            f"pinned={merged.pinned_endpoint_id})"
        )
        self._set_preference(merged, push=False)
        return True

    def set_session(self, session_token: str | None) -> None:
        """Attach or clear the authenticated session used for preference sync."""
        self._preference_sync.set_session(session_token)

    async def sync_preferences(self, session_token: str | None = None) -> bool:
        """
        Fetch the profile preference, reconcile, and flush pending writes.

        Returns:
            True if the local preference changed.
        """
        if session_token is not None:
            self.set_session(session_token)

        snapshot = await self._preference_sync.fetch()
        if snapshot is None or self._closed:
            return False

        return self.apply_remote_preference(snapshot)

    def on_active_endpoint_change(self, callback: ActiveEndpointCallback | None) -> None:
        """Register the single failover subscriber, replacing any previous one."""
        self._notifier.on_active_endpoint_change(callback)

    # =========================================================================
    # Derived State
    # =========================================================================

    @property
    def active_id(self) -> str | None:
        """Id of the active endpoint."""
        return self._active_id

    @property
    def active_endpoint(self) -> Endpoint | None:
        """The active endpoint, if registered. It need not be online."""
        return self._registry.get(self._active_id)

    @property
    def active_base_url(self) -> str | None:
        """REST base URL of the active endpoint."""
        endpoint = self.active_endpoint
        return endpoint.base_url if endpoint is not None else None

    @property
    def active_stream_url(self) -> str | None:
        """Websocket URL of the active endpoint."""
        endpoint = self.active_endpoint
        return endpoint.stream_url if endpoint is not None else None

    @property
    def fastest_endpoint(self) -> Endpoint | None:
        """Lowest-latency online endpoint."""
        return fastest_endpoint(self._registry.endpoints)

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        """Detached copies of all endpoints in registry order."""
        return self._registry.snapshot()

    def visible_endpoints(self, now_ms: int | None = None) -> list[Endpoint]:
        """Endpoints worth showing, with long-offline ones pruned."""
        return [
            e.copy()
            for e in self._registry.visible_endpoints(
                now_ms=now_ms,
                offline_threshold_ms=self._settings.offline_threshold_ms,
            )
        ]

    @property
    def preference(self) -> SelectionPreference:
        """Current selection preference."""
        return self._preference

    @property
    def auto_fastest(self) -> bool:
        """Check if auto-fastest selection is on."""
        return self._preference.auto_fastest

    @property
    def peer_mesh(self) -> PeerMeshSnapshot | None:
        """Last known peer mesh."""
        return self._peers.snapshot

    def sync_lag_by_endpoint(self) -> dict[str, SyncLag | None]:
        """Replication lag per endpoint from the last sync health refresh."""
        return self._peers.sync_lag_by_endpoint(self._registry.endpoints)

    def snapshot(self) -> ManagerSnapshot:
        """Detached view of the current state."""
        fastest = self.fastest_endpoint
        return ManagerSnapshot(
            active_id=self._active_id,
            auto_fastest=self._preference.auto_fastest,
            pinned_endpoint_id=self._preference.pinned_endpoint_id,
            endpoints=self._registry.snapshot(),
            fastest_id=fastest.id if fastest is not None else None,
            peer_mesh=self._peers.snapshot,
            generation=self._registry.generation,
        )

    @property
    def registry(self) -> ServerRegistry:
        """Endpoint registry."""
        return self._registry

    @property
    def peers(self) -> PeerMeshTracker:
        """Peer mesh tracker."""
        return self._peers

    @property
    def notifier(self) -> FailoverNotifier:
        """Failover notifier."""
        return self._notifier

    @property
    def preference_sync(self) -> PreferenceSync:
        """Remote preference sync."""
        return self._preference_sync

    @property
    def event_bus(self) -> EventBus:
        """Event bus."""
        return self._event_bus

    @property
    def metrics(self) -> MetricsCollector:
        """Get metrics collector."""
        return self._metrics

    @property
    def is_running(self) -> bool:
        """Check if timers are running."""
        return self._running


@asynccontextmanager
async def create_manager(
    settings: Settings,
    **kwargs: Any,
) -> AsyncIterator[ConnectionManager]:
    """
    Create and manage the connection manager lifecycle.

    Usage:
        async with create_manager(settings) as manager:
            await manager.refresh_health()
    """
    manager = ConnectionManager(settings, **kwargs)

    try:
        await manager.start()
        yield manager
    finally:
        await manager.stop()
