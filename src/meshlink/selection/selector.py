"""
Active endpoint selection.

Pure functions over the endpoint list and the selection preference.
They are cheap and are re-run after every registry or preference change.
"""

from collections.abc import Sequence

from meshlink.core.types import Endpoint, SelectionPreference


def fastest_endpoint(endpoints: Sequence[Endpoint]) -> Endpoint | None:
    """
    Lowest-latency online endpoint.

    Ties go to the endpoint that comes first in registry order.

    Returns:
        The fastest endpoint, or None when nothing is online.
    """
    candidates = [e for e in endpoints if e.is_online and e.latency_ms is not None]
    if not candidates:
        return None

    # min() keeps the first of equal keys
    return min(candidates, key=lambda e: e.latency_ms)  # type: ignore[arg-type, return-value]


def select_active(
    endpoints: Sequence[Endpoint],
    preference: SelectionPreference,
    previous_id: str | None,
    default_id: str,
) -> str:
    """
    Decide which endpoint is active.

    Args:
        endpoints: Registry contents in order.
        preference: Current selection preference.
        previous_id: Currently active id, if any.
        default_id: Environment default used when nothing else applies.

    Returns:
        The active endpoint id. In auto-fastest mode with nothing online the
        previous id is kept, so an outage never moves the selection onto an
        endpoint known to be offline.
    """
    if preference.auto_fastest:
        fastest = fastest_endpoint(endpoints)
        if fastest is not None:
            return fastest.id
        return previous_id if previous_id is not None else default_id

    pinned = preference.pinned_endpoint_id
    if pinned is not None and any(e.id == pinned for e in endpoints):
        return pinned

    return default_id
