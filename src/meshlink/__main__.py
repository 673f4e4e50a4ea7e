"""
Entry point for the connection manager.

Usage:
    python -m meshlink
    meshlink  # if installed via pip
"""

import asyncio
import signal
import sys
from typing import TYPE_CHECKING


# Try to use uvloop for better performance
try:
    import uvloop

    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False

if TYPE_CHECKING:
    from meshlink.config.settings import Settings
    from meshlink.core.manager import ConnectionManager
    from meshlink.telemetry.reporter import CLIReporter


def refresh_panel(reporter: "CLIReporter", manager: "ConnectionManager") -> None:
    """Push the manager state to the panel, long-offline endpoints pruned."""
    state = manager.snapshot()
    reporter.set_state(
        endpoints=manager.visible_endpoints(),
        active_id=state.active_id,
        auto_fastest=state.auto_fastest,
        peer_mesh=state.peer_mesh,
    )


async def run_manager(settings: "Settings") -> int:
    """Run the manager with the status panel until interrupted."""
    from meshlink.core.event_bus import EventType
    from meshlink.core.manager import ConnectionManager
    from meshlink.selection.failover import ReauthCoordinator
    from meshlink.telemetry.logger import setup_logging
    from meshlink.telemetry.reporter import CLIReporter

    async_logger = setup_logging(level=settings.log_level, log_file=settings.log_file)
    manager = ConnectionManager(settings)
    reporter = CLIReporter(metrics=manager.metrics, environment=settings.environment.value)
    shutdown_event = asyncio.Event()

    reauth: ReauthCoordinator | None = None
    if settings.session_token is not None:
        token = settings.session_token.get_secret_value()
        manager.set_session(token)
        reauth = ReauthCoordinator(
            can_reauth=lambda: manager.preference_sync.has_session,
            disconnect=lambda: manager.set_session(None),
            login=lambda: manager.sync_preferences(token),
            settle_delay=settings.reauth_settle_delay,
        )
        reauth.attach(manager.notifier)

    for event_type in (
        EventType.ENDPOINTS_REPLACED,
        EventType.SWEEP_COMPLETE,
        EventType.ACTIVE_ENDPOINT_CHANGED,
        EventType.PREFERENCE_CHANGED,
        EventType.PEER_MESH_UPDATED,
    ):
        manager.event_bus.subscribe_sync(event_type, lambda _event: refresh_panel(reporter, manager))

    async_logger.bind_endpoint(manager.active_id)
    manager.event_bus.subscribe_sync(
        EventType.ACTIVE_ENDPOINT_CHANGED,
        lambda event: async_logger.bind_endpoint(event.payload["active"]),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        refresh_panel(reporter, manager)
        await manager.start()
        if reauth is not None:
            await manager.sync_preferences()
        reporter.start(interval=1.0)
        await shutdown_event.wait()
        return 0

    except Exception as e:
        print(f"\nFatal error: {e}")
        import traceback

        traceback.print_exc()
        return 1

    finally:
        reporter.stop()
        if reauth is not None:
            await reauth.close()
        await manager.stop()
        reporter.print_summary()
        async_logger.stop()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success).
    """
    from meshlink import __version__
    from meshlink.config.settings import get_settings

    # Print banner
    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║     MESHLINK CONNECTION MANAGER v{__version__:<23}      ║
║                                                               ║
║     Endpoint discovery, health probing and failover           ║
╚═══════════════════════════════════════════════════════════════╝
    """
    )

    # Load settings
    try:
        settings = get_settings()
    except Exception as e:
        print(f"Configuration error: {e}")
        print("\nSettings are read from MESHLINK_* environment variables or .env, e.g.:")
        print("  MESHLINK_ENVIRONMENT=development")
        print("  MESHLINK_ENTRY_POINT_URL=https://osaka.haunt.st")
        return 1

    use_uvloop = settings.use_uvloop and UVLOOP_AVAILABLE

    # Print configuration summary
    print("Configuration:")
    print(f"  Environment:    {settings.environment.value}")
    print(f"  Entry point:    {settings.entry_point_url or '(fallback list)'}")
    print(f"  Fallbacks:      {', '.join(f.id for f in settings.resolved_fallback_endpoints)}")
    print(f"  Default:        {settings.default_endpoint_id}")
    print(f"  Sweep interval: {settings.sweep_interval:.0f}s (probe timeout {settings.probe_timeout:.0f}s)")
    print(f"  Discovery:      every {settings.discovery_interval:.0f}s")
    print(f"  Peer feed:      {'Enabled' if settings.peer_feed_enabled else 'Disabled'}")
    print(f"  Profile sync:   {'Enabled' if settings.session_token else 'Disabled'}")
    print(f"  State file:     {settings.cache_path or '(in memory)'}")
    print(f"  uvloop:         {'Enabled' if use_uvloop else 'Disabled'}")
    print()

    try:
        if use_uvloop:
            return uvloop.run(run_manager(settings))
        return asyncio.run(run_manager(settings))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
