"""
Endpoint registry.

Ordered table of known endpoints with their observed health. The set
of endpoints is only ever replaced wholesale; health fields are updated
in place from probe results.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from meshlink.config.constants import (
    ENDPOINT_CACHE_KEY,
    ENDPOINT_CACHE_TTL_MS,
    OFFLINE_THRESHOLD_MS,
)
from meshlink.core.types import Endpoint, EndpointStatus, KeyValueStore, ProbeResult
from meshlink.utils.time import get_timestamp_ms


logger = logging.getLogger(__name__)


class ServerRegistry:
    """
    Known endpoints in registry order.

    Features:
    - O(1) lookup by id
    - Generation counter bumped on every wholesale replacement, so
      results computed against an older set can be recognised and dropped
    - Identity-only cache with TTL for fast startup
    """

    def __init__(
        self,
        store: KeyValueStore,
        endpoints: Iterable[Endpoint] = (),
        cache_ttl_ms: int = ENDPOINT_CACHE_TTL_MS,
    ) -> None:
        """
        Initialize registry.

        Args:
            store: Persistence port for the endpoint cache.
            endpoints: Initial endpoint set (usually the fallback list).
            cache_ttl_ms: Maximum cache age accepted by `load_cache`.
        """
        self._store = store
        self._cache_ttl_ms = cache_ttl_ms
        self._endpoints: list[Endpoint] = []
        self._by_id: dict[str, Endpoint] = {}
        self._generation = 0
        self._set(endpoints)

    def _set(self, endpoints: Iterable[Endpoint]) -> None:
        ordered: list[Endpoint] = []
        by_id: dict[str, Endpoint] = {}
        for endpoint in endpoints:
            if endpoint.id in by_id:
                logger.warning(f"Duplicate endpoint id {endpoint.id!r} ignored")
                continue
            ordered.append(endpoint)
            by_id[endpoint.id] = endpoint

        self._endpoints = ordered
        self._by_id = by_id
        self._generation += 1

    # =========================================================================
    # Mutation
    # =========================================================================

    def replace(self, endpoints: Iterable[Endpoint], persist: bool = True) -> None:
        """
        Replace the whole endpoint set.

        Args:
            endpoints: New authoritative set, in registry order.
            persist: Write the identity list to the endpoint cache.
        """
        self._set(endpoints)
        logger.info(f"Registry replaced: {len(self._endpoints)} endpoints")

        if persist:
            self.save_cache()

    def apply_probe(self, result: ProbeResult) -> bool:
        """
        Record a probe result in place.

        Returns:
            False if the endpoint is no longer registered.
        """
        endpoint = self._by_id.get(result.endpoint_id)
        if endpoint is None:
            return False

        endpoint.apply_probe(result)
        return True

    def apply_probes(self, results: Iterable[ProbeResult], generation: int) -> int:
        """
        Record a batch of probe results taken against `generation`.

        Results from a replaced endpoint set are discarded.

        Returns:
            Number of results applied.
        """
        if generation != self._generation:
            logger.debug(
                f"Dropping probe results for generation {generation} "
                f"(current {self._generation})"
            )
            return 0

        return sum(1 for r in results if self.apply_probe(r))

    # =========================================================================
    # Cache
    # =========================================================================

    def save_cache(self) -> None:
        """Persist endpoint identities with the current timestamp."""
        self._store.save(
            ENDPOINT_CACHE_KEY,
            [endpoint.to_cache_dict() for endpoint in self._endpoints],
        )

    def load_cache(self) -> bool:
        """
        Pre-populate from a fresh cache.

        Cached identity is trusted, cached health is not: every endpoint
        starts in the checking state.

        Returns:
            True if the registry was populated from cache.
        """
        cached = self._store.load(ENDPOINT_CACHE_KEY, max_age_ms=self._cache_ttl_ms)
        if not cached:
            return False

        try:
            endpoints = [Endpoint.from_cache_dict(item) for item in cached]
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring malformed endpoint cache: {e}")
            return False

        for endpoint in endpoints:
            endpoint.reset_health()

        self._set(endpoints)
        logger.info(f"Loaded {len(endpoints)} endpoints from cache")
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, endpoint_id: str | None) -> Endpoint | None:
        """Get endpoint by id."""
        if endpoint_id is None:
            return None
        return self._by_id.get(endpoint_id)

    def ids(self) -> list[str]:
        """Endpoint ids in registry order."""
        return [e.id for e in self._endpoints]

    @property
    def endpoints(self) -> tuple[Endpoint, ...]:
        """Live endpoints in registry order (do not mutate)."""
        return tuple(self._endpoints)

    def snapshot(self) -> tuple[Endpoint, ...]:
        """Detached copies for readers outside the manager."""
        return tuple(e.copy() for e in self._endpoints)

    @property
    def generation(self) -> int:
        """Counter bumped on every wholesale replacement."""
        return self._generation

    @property
    def local_dev(self) -> Endpoint | None:
        """The loopback development endpoint, if registered."""
        for endpoint in self._endpoints:
            if endpoint.is_local_dev:
                return endpoint
        return None

    def online(self) -> list[Endpoint]:
        """Endpoints whose last probe succeeded."""
        return [e for e in self._endpoints if e.is_online]

    def visible_endpoints(
        self,
        now_ms: int | None = None,
        offline_threshold_ms: int = OFFLINE_THRESHOLD_MS,
    ) -> list[Endpoint]:
        """
        Endpoints worth showing to the user.

        Online and checking endpoints are always shown, as is the local-dev
        endpoint. Offline endpoints are hidden once their last check is older
        than `offline_threshold_ms`.
        """
        now = get_timestamp_ms() if now_ms is None else now_ms
        visible = []

        for endpoint in self._endpoints:
            if endpoint.status != EndpointStatus.OFFLINE or endpoint.is_local_dev:
                visible.append(endpoint)
            elif (
                endpoint.last_checked_at is not None
                and now - endpoint.last_checked_at < offline_threshold_ms
            ):
                visible.append(endpoint)

        return visible

    def to_dict(self) -> list[dict[str, Any]]:
        """Export endpoints with health for status output."""
        return [
            {
                **e.to_cache_dict(),
                "status": e.status.value,
                "latencyMs": e.latency_ms,
                "lastCheckedAt": e.last_checked_at,
            }
            for e in self._endpoints
        ]

    def __contains__(self, endpoint_id: object) -> bool:
        return endpoint_id in self._by_id

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(tuple(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)
