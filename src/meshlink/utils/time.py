"""
Time utilities.

Wall-clock timestamps for persisted records and monotonic timers
for round-trip measurement.
"""

import time
from datetime import UTC, datetime


def get_timestamp_ms() -> int:
    """
    Get current timestamp in milliseconds.

    Used for `updated_at`, `last_checked_at` and cache timestamps,
    matching the millisecond epoch used by the mesh API.

    Returns:
        Current Unix timestamp in milliseconds.
    """
    return time.time_ns() // 1_000_000


def format_timestamp_ms(timestamp_ms: int, include_date: bool = False) -> str:
    """
    Format millisecond timestamp for display.

    Args:
        timestamp_ms: Timestamp in milliseconds.
        include_date: Whether to include the date portion.

    Returns:
        Formatted timestamp string with millisecond precision.

    Example:
        >>> format_timestamp_ms(1704067200123)
        '00:00:00.123'
        >>> format_timestamp_ms(1704067200123, include_date=True)
        '2024-01-01 00:00:00.123'
    """
    seconds = timestamp_ms // 1000
    millis = timestamp_ms % 1000

    dt = datetime.fromtimestamp(seconds, tz=UTC)

    if include_date:
        return f"{dt.strftime('%Y-%m-%d %H:%M:%S')}.{millis:03d}"
    return f"{dt.strftime('%H:%M:%S')}.{millis:03d}"


def format_age_ms(age_ms: int) -> str:
    """
    Format an age for human-readable display.

    Examples:
        >>> format_age_ms(500)
        'just now'
        >>> format_age_ms(45_000)
        '45s ago'
        >>> format_age_ms(180_000)
        '3m ago'
    """
    if age_ms < 1000:
        return "just now"
    elif age_ms < 60_000:
        return f"{age_ms // 1000}s ago"
    else:
        return f"{age_ms // 60_000}m ago"


class LatencyTimer:
    """
    Context manager for measuring round-trip time.

    Uses the monotonic clock so wall-clock adjustments cannot
    produce negative latencies.

    Example:
        >>> with LatencyTimer() as timer:
        ...     do_something()
        >>> print(f"Latency: {timer.latency_ms}ms")
    """

    __slots__ = ("start_ns", "end_ns", "latency_ms")

    def __init__(self) -> None:
        self.start_ns: int = 0
        self.end_ns: int = 0
        self.latency_ms: int = 0

    def __enter__(self) -> "LatencyTimer":
        self.start_ns = time.perf_counter_ns()
        return self

    def __exit__(self, *args: object) -> None:
        self.end_ns = time.perf_counter_ns()
        self.latency_ms = round((self.end_ns - self.start_ns) / 1_000_000)
