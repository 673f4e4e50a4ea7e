"""Utility functions for the connection manager."""

from meshlink.utils.time import (
    LatencyTimer,
    format_age_ms,
    format_timestamp_ms,
    get_timestamp_ms,
)


__all__ = [
    "LatencyTimer",
    "format_age_ms",
    "format_timestamp_ms",
    "get_timestamp_ms",
]
