"""
Mesh constants and configuration values.

This module contains all hardcoded values used throughout the connection manager.
Values are organized by category for easy maintenance and auditing.
"""

from typing import Final


# =============================================================================
# Mesh API Routes
# =============================================================================

ROUTE_MESH_SERVERS: Final[str] = "/api/mesh/servers"
ROUTE_HEALTH: Final[str] = "/api/health"
ROUTE_PEERS: Final[str] = "/api/peers"
ROUTE_SYNC_HEALTH: Final[str] = "/api/sync/health"
ROUTE_PREFERENCES: Final[str] = "/api/user/preferences"


# =============================================================================
# Fallback Endpoints
# =============================================================================

# (id, display name, region, base url, stream url)
PRODUCTION_FALLBACK_ENDPOINTS: Final[tuple[tuple[str, str, str, str, str], ...]] = (
    ("osaka", "Osaka", "Asia Pacific", "https://osaka.haunt.st", "wss://osaka.haunt.st/ws"),
    ("seoul", "Seoul", "Asia Pacific", "https://seoul.haunt.st", "wss://seoul.haunt.st/ws"),
    ("nyc", "New York", "North America", "https://nyc.haunt.st", "wss://nyc.haunt.st/ws"),
)

LOCAL_ENDPOINT_ID: Final[str] = "local"
LOCAL_ENDPOINT: Final[tuple[str, str, str, str, str]] = (
    LOCAL_ENDPOINT_ID,
    "Local",
    "Local",
    "http://localhost:3001",
    "ws://localhost:3001/ws",
)

DEFAULT_PRODUCTION_ENDPOINT_ID: Final[str] = "osaka"
DEFAULT_DEVELOPMENT_ENDPOINT_ID: Final[str] = LOCAL_ENDPOINT_ID


# =============================================================================
# Scheduling (seconds)
# =============================================================================

DEFAULT_SWEEP_INTERVAL: Final[float] = 30.0
DEFAULT_LOCAL_SWEEP_INTERVAL: Final[float] = 5.0
DEFAULT_DISCOVERY_INTERVAL: Final[float] = 300.0
DEFAULT_INITIAL_SWEEP_DELAY: Final[float] = 0.5

# Per-request timeouts
DEFAULT_PROBE_TIMEOUT: Final[float] = 5.0
DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0


# =============================================================================
# Persistence
# =============================================================================

# v2 invalidates caches holding plain-HTTP production URLs
ENDPOINT_CACHE_KEY: Final[str] = "meshlink_servers_v2"
ACTIVE_ENDPOINT_KEY: Final[str] = "meshlink_active_server"
PREFERENCE_KEY: Final[str] = "meshlink_selection_preference"

ENDPOINT_CACHE_TTL_MS: Final[int] = 5 * 60 * 1000

# Offline endpoints older than this are hidden from the visible list
OFFLINE_THRESHOLD_MS: Final[int] = 5 * 60 * 1000


# =============================================================================
# Preference Sync
# =============================================================================

PREFERENCE_DEBOUNCE: Final[float] = 1.0  # seconds
REAUTH_SETTLE_DELAY: Final[float] = 0.1  # seconds


# =============================================================================
# Peer Feed (WebSocket)
# =============================================================================

MIN_RECONNECT_DELAY: Final[float] = 1.0  # seconds
MAX_RECONNECT_DELAY: Final[float] = 30.0  # seconds
RECONNECT_MULTIPLIER: Final[float] = 2.0

WS_PING_INTERVAL: Final[float] = 20.0  # seconds
WS_CLOSE_TIMEOUT: Final[float] = 5.0  # seconds
WS_MAX_MESSAGE_SIZE: Final[int] = 1024 * 1024  # 1MB


# =============================================================================
# Logging & Telemetry
# =============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(endpoint)-10s | %(name)s | %(message)s"
LOG_NO_ENDPOINT: Final[str] = "-"
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

# Maximum log queue size
MAX_LOG_QUEUE_SIZE: Final[int] = 10_000

# Probe latency samples kept per endpoint
LATENCY_WINDOW_SIZE: Final[int] = 120
