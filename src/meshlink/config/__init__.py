"""Configuration module for the connection manager."""

from meshlink.config.constants import (
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_LOCAL_SWEEP_INTERVAL,
    DEFAULT_SWEEP_INTERVAL,
    ENDPOINT_CACHE_TTL_MS,
)
from meshlink.config.settings import Environment, Settings, get_settings


__all__ = [
    "Environment",
    "Settings",
    "get_settings",
    "DEFAULT_DISCOVERY_INTERVAL",
    "DEFAULT_LOCAL_SWEEP_INTERVAL",
    "DEFAULT_SWEEP_INTERVAL",
    "ENDPOINT_CACHE_TTL_MS",
]
