#!/usr/bin/env python3
"""
Mesh Probe Script.

Discovers the endpoint mesh once, sweeps every endpoint and prints
latency, selection and peer mesh information without starting timers.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path for direct execution
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from meshlink.config.settings import get_settings
from meshlink.core.manager import ConnectionManager
from meshlink.registry.storage import MemoryStore
from meshlink.utils.time import format_age_ms, format_timestamp_ms, get_timestamp_ms


async def main() -> int:
    """Discover, probe and display the mesh."""
    print("=" * 60)
    print("  MESH PROBE")
    print("=" * 60)
    print()

    try:
        settings = get_settings()
    except Exception as e:
        print(f"Error loading settings: {e}")
        return 1

    manager = ConnectionManager(settings, store=MemoryStore())
    manager.set_auto_fastest(True)

    try:
        print(f"Discovering endpoints ({settings.environment.value})...")
        if await manager.discover():
            print(f"Discovered {len(manager.registry)} endpoints")
        else:
            print("Discovery failed, probing the fallback list")
        print()

        print(f"Probing (timeout {settings.probe_timeout:.1f}s)...")
        await manager.refresh_health()
        print()

        print("=" * 60)
        print("  ENDPOINTS")
        print("=" * 60)
        print()

        lags = manager.sync_lag_by_endpoint()
        now = get_timestamp_ms()
        for endpoint in manager.endpoints:
            marker = "*" if endpoint.id == manager.active_id else " "
            latency = f"{endpoint.latency_ms}ms" if endpoint.latency_ms is not None else "---"
            lag = lags.get(endpoint.id)
            lag_str = f"+{lag.ahead}/-{lag.behind}" if lag is not None else "n/a"
            print(
                f" {marker} {endpoint.id:<12} {endpoint.region:<10} "
                f"{endpoint.status.value:<9} {latency:>8}  sync {lag_str}"
            )
            checked = (
                format_age_ms(now - endpoint.last_checked_at)
                if endpoint.last_checked_at is not None
                else "never"
            )
            print(f"     {endpoint.base_url} (checked {checked})")
        print()

        print("=" * 60)
        print("  SUMMARY")
        print("=" * 60)
        print()

        fastest = manager.fastest_endpoint
        online = len(manager.registry.online())
        print(f"Online:          {online}/{len(manager.registry)}")
        print(f"Fastest:         {fastest.id if fastest else '---'}")
        print(f"Active:          {manager.active_id}")

        mesh = manager.peer_mesh
        if mesh is not None:
            print(
                f"Peer mesh:       {mesh.connected_count}/{mesh.total_peers} connected "
                f"via {mesh.server_id} ({mesh.health_percent}%)"
                f" at {format_timestamp_ms(mesh.timestamp)}"
            )
        print()

    finally:
        await manager.stop()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
