"""
Pytest configuration and shared fixtures.

Provides reusable test fixtures for all test modules.
"""

import pytest

from meshlink.config.settings import Environment, FallbackEndpoint, Settings
from meshlink.core.types import Endpoint, EndpointStatus
from meshlink.registry.storage import MemoryStore
from tests.mocks.mesh import (
    NYC_URL,
    OSAKA_URL,
    SEOUL_URL,
    MockMeshClient,
    make_endpoint,
)


# =============================================================================
# Endpoint Fixtures
# =============================================================================


@pytest.fixture
def endpoint_a() -> Endpoint:
    """Online endpoint, 20ms."""
    return make_endpoint("a", EndpointStatus.ONLINE, 20, 1_000)


@pytest.fixture
def endpoint_b() -> Endpoint:
    """Online endpoint, 80ms."""
    return make_endpoint("b", EndpointStatus.ONLINE, 80, 1_000)


@pytest.fixture
def endpoint_c() -> Endpoint:
    """Offline endpoint."""
    return make_endpoint("c", EndpointStatus.OFFLINE, None, 1_000)


@pytest.fixture
def endpoints(endpoint_a: Endpoint, endpoint_b: Endpoint, endpoint_c: Endpoint) -> list[Endpoint]:
    """A (20ms), B (80ms) online and C offline, in registry order."""
    return [endpoint_a, endpoint_b, endpoint_c]


# =============================================================================
# Settings Fixtures
# =============================================================================


def _fallbacks() -> list[FallbackEndpoint]:
    return [
        FallbackEndpoint(
            id="osaka",
            display_name="Osaka",
            region="Asia Pacific",
            base_url=OSAKA_URL,
            stream_url="ws://osaka.test/ws",
        ),
        FallbackEndpoint(
            id="seoul",
            display_name="Seoul",
            region="Asia Pacific",
            base_url=SEOUL_URL,
            stream_url="ws://seoul.test/ws",
        ),
        FallbackEndpoint(
            id="nyc",
            display_name="New York",
            region="North America",
            base_url=NYC_URL,
            stream_url="ws://nyc.test/ws",
        ),
    ]


@pytest.fixture
def settings() -> Settings:
    """Production settings with test fallbacks and short timings."""
    return Settings(
        _env_file=None,
        environment=Environment.PRODUCTION,
        entry_point_url=OSAKA_URL,
        fallback_endpoints=_fallbacks(),
        sweep_interval=30.0,
        local_sweep_interval=5.0,
        discovery_interval=300.0,
        initial_sweep_delay=0.0,
        probe_timeout=0.2,
        preference_debounce=0.01,
        reauth_settle_delay=0.0,
        use_uvloop=False,
    )


@pytest.fixture
def dev_settings() -> Settings:
    """Development settings: loopback endpoint prepended, default id `local`."""
    return Settings(
        _env_file=None,
        environment=Environment.DEVELOPMENT,
        entry_point_url=OSAKA_URL,
        sweep_interval=30.0,
        local_sweep_interval=5.0,
        initial_sweep_delay=0.0,
        probe_timeout=0.2,
        preference_debounce=0.01,
        use_uvloop=False,
    )


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def memory_store() -> MemoryStore:
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def mock_client() -> MockMeshClient:
    """Mock mesh client with nothing reachable."""
    return MockMeshClient()
