"""
Mesh discovery.

Learns the current endpoint set from one mesh member, trying the
configured entry point first and then each fallback endpoint in order.
"""

import logging
from collections.abc import Sequence

from meshlink.api.client import MeshClient, MeshClientError
from meshlink.api.models import MeshDiscoveryResponse, MeshServer
from meshlink.config.settings import FallbackEndpoint, Settings
from meshlink.core.types import Endpoint


logger = logging.getLogger(__name__)


def endpoint_from_fallback(fallback: FallbackEndpoint) -> Endpoint:
    """Build a fresh (checking) endpoint from a static definition."""
    return Endpoint(
        id=fallback.id,
        display_name=fallback.display_name,
        region=fallback.region,
        base_url=fallback.base_url.rstrip("/"),
        stream_url=fallback.stream_url,
        is_local_dev=fallback.is_local_dev,
    )


def endpoint_from_mesh_server(server: MeshServer) -> Endpoint:
    """
    Build an endpoint from a discovery entry.

    The status the entry point reports is its own view of the member, not
    ours, so discovered endpoints start in the checking state until probed.
    """
    return Endpoint(
        id=server.id,
        display_name=server.display_name,
        region=server.region,
        base_url=server.api_url.rstrip("/"),
        stream_url=server.ws_url,
        is_local_dev=server.is_local,
        is_discovered=True,
    )


def fallback_endpoints(settings: Settings) -> list[Endpoint]:
    """Static endpoint list for the configured environment."""
    return [endpoint_from_fallback(f) for f in settings.resolved_fallback_endpoints]


class Discoverer:
    """
    Discovers mesh endpoints.

    `discover()` never raises: every failure is logged and reported as
    None so the caller keeps its current endpoint set.
    """

    def __init__(
        self,
        client: MeshClient,
        entry_point_url: str,
        fallbacks: Sequence[FallbackEndpoint],
        local_endpoint: FallbackEndpoint | None = None,
    ) -> None:
        """
        Initialize discoverer.

        Args:
            client: Shared mesh client.
            entry_point_url: Member queried first (may be empty).
            fallbacks: Static endpoints tried in order when the entry point fails.
            local_endpoint: Loopback endpoint kept even when discovery omits it.
        """
        self._client = client
        self._entry_point_url = entry_point_url.rstrip("/")
        self._fallbacks = list(fallbacks)
        self._local_endpoint = local_endpoint
        self._last_source: str | None = None

    @classmethod
    def from_settings(cls, client: MeshClient, settings: Settings) -> "Discoverer":
        """Construct a Discoverer using application settings."""
        return cls(
            client=client,
            entry_point_url=settings.entry_point_url,
            fallbacks=settings.resolved_fallback_endpoints,
            local_endpoint=settings.local_endpoint,
        )

    def _candidate_urls(self) -> list[str]:
        urls: list[str] = []
        if self._entry_point_url:
            urls.append(self._entry_point_url)

        for fallback in self._fallbacks:
            url = fallback.base_url.rstrip("/")
            if not url or fallback.is_local_dev or url in urls:
                continue
            urls.append(url)

        return urls

    async def _query(self, base_url: str) -> MeshDiscoveryResponse | None:
        try:
            return await self._client.get_mesh_servers(base_url)
        except MeshClientError as e:
            logger.debug(f"Discovery via {base_url} failed: {e}")
            return None

    async def discover(self) -> list[Endpoint] | None:
        """
        Fetch the authoritative endpoint set.

        Returns:
            Endpoints in mesh order (local-dev first when it had to be added),
            or None if no member answered.
        """
        for base_url in self._candidate_urls():
            response = await self._query(base_url)
            if response is None:
                continue

            self._last_source = base_url
            endpoints = self._build_endpoints(response)
            logger.info(
                f"Discovered {len(endpoints)} endpoints via {base_url} "
                f"(self={response.self_id})"
            )
            return endpoints

        logger.warning("Endpoint discovery failed: no mesh member answered, keeping current set")
        return None

    def _build_endpoints(self, response: MeshDiscoveryResponse) -> list[Endpoint]:
        endpoints: list[Endpoint] = []
        seen: set[str] = set()

        for server in response.servers:
            if server.id in seen:
                continue
            seen.add(server.id)
            endpoints.append(endpoint_from_mesh_server(server))

        if self._local_endpoint is not None and not any(e.is_local_dev for e in endpoints):
            endpoints.insert(0, endpoint_from_fallback(self._local_endpoint))

        return endpoints

    @property
    def last_source(self) -> str | None:
        """Base URL of the member that answered the last successful discovery."""
        return self._last_source
