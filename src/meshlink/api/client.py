"""
Async mesh REST API client.

One pooled aiohttp session shared by every component that talks to
mesh endpoints. Requests take the target base URL explicitly, because
discovery, probing and peer queries each address different endpoints.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiohttp
import orjson
from pydantic import ValidationError

from meshlink.api.models import (
    MeshDiscoveryResponse,
    PeerMeshResponse,
    RemotePreferenceSnapshot,
    SyncHealthResponse,
)
from meshlink.config.constants import (
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    ROUTE_HEALTH,
    ROUTE_MESH_SERVERS,
    ROUTE_PEERS,
    ROUTE_PREFERENCES,
    ROUTE_SYNC_HEALTH,
)


class MeshClientError(Exception):
    """Base exception for mesh client errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MeshAPIError(MeshClientError):
    """Non-success HTTP response from an endpoint."""

    pass


def unwrap_data(payload: Any) -> Any:
    """Strip the optional `{"data": {...}}` envelope."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class MeshClient:
    """
    Async mesh REST API client.

    Features:
    - Single session with connection pooling
    - orjson for JSON encoding and decoding
    - Per-request timeouts
    - Pydantic validation of every payload
    """

    def __init__(self, request_timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        """
        Initialize the mesh client.

        Args:
            request_timeout: Default timeout in seconds for non-probe requests.
        """
        self._request_timeout = request_timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=100,
                limit_per_host=10,
                keepalive_timeout=30,
                enable_cleanup_closed=True,
            )

            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json"},
                json_serialize=lambda x: orjson.dumps(x).decode(),
            )

        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @property
    def is_closed(self) -> bool:
        """Check if no session is open."""
        return self._session is None or self._session.closed

    @asynccontextmanager
    async def _request_context(self) -> AsyncIterator[aiohttp.ClientSession]:
        """Context manager translating transport errors."""
        session = await self._get_session()
        try:
            yield session
        except aiohttp.ClientError as e:
            raise MeshClientError(f"Network error: {e}") from e
        except TimeoutError as e:
            raise MeshClientError("Request timed out") from e

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an API request.

        Args:
            method: HTTP method (GET, PUT).
            url: Absolute URL.
            timeout: Total timeout in seconds.
            headers: Extra request headers.
            body: JSON body for writes.

        Returns:
            Parsed JSON response (None for empty bodies).

        Raises:
            MeshAPIError: On non-2xx response.
            MeshClientError: On network, timeout or decode errors.
        """
        client_timeout = aiohttp.ClientTimeout(total=timeout or self._request_timeout)

        async with self._request_context() as session:
            async with session.request(
                method,
                url,
                timeout=client_timeout,
                headers=headers,
                json=body,
            ) as response:
                return await self._handle_response(response)

    async def _handle_response(self, response: aiohttp.ClientResponse) -> Any:
        """Parse and validate response."""
        raw = await response.read()

        if not 200 <= response.status < 300:
            raise MeshAPIError(
                f"API error {response.status}: {raw[:200].decode(errors='replace')}",
                status=response.status,
            )

        if not raw:
            return None

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise MeshClientError(f"Invalid JSON response: {e}") from e

    # =========================================================================
    # Discovery & Health
    # =========================================================================

    async def get_mesh_servers(self, base_url: str) -> MeshDiscoveryResponse:
        """Ask one mesh member for the full endpoint list."""
        data = await self._request("GET", f"{base_url}{ROUTE_MESH_SERVERS}")
        try:
            return MeshDiscoveryResponse.model_validate(unwrap_data(data))
        except ValidationError as e:
            raise MeshClientError(f"Malformed discovery payload: {e}") from e

    async def health(self, base_url: str, timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        """
        Hit the health route.

        Only the status code matters; the body is read and discarded so
        the connection can be reused.
        """
        client_timeout = aiohttp.ClientTimeout(total=timeout)

        async with self._request_context() as session:
            async with session.get(f"{base_url}{ROUTE_HEALTH}", timeout=client_timeout) as response:
                await response.read()
                if not 200 <= response.status < 300:
                    raise MeshAPIError(f"Health check failed: {response.status}", response.status)

    # =========================================================================
    # Peer Mesh
    # =========================================================================

    async def get_peers(self, base_url: str) -> PeerMeshResponse:
        """Get the peer list as seen by one endpoint."""
        data = await self._request("GET", f"{base_url}{ROUTE_PEERS}")
        try:
            return PeerMeshResponse.model_validate(unwrap_data(data))
        except ValidationError as e:
            raise MeshClientError(f"Malformed peers payload: {e}") from e

    async def get_sync_health(self, base_url: str) -> SyncHealthResponse:
        """Get replication cursor information for one endpoint."""
        data = await self._request("GET", f"{base_url}{ROUTE_SYNC_HEALTH}")
        try:
            return SyncHealthResponse.model_validate(unwrap_data(data))
        except ValidationError as e:
            raise MeshClientError(f"Malformed sync health payload: {e}") from e

    # =========================================================================
    # Profile Preferences (Authenticated)
    # =========================================================================

    async def get_preferences(self, base_url: str, session_token: str) -> RemotePreferenceSnapshot:
        """Read the selection preference from the user's profile."""
        data = await self._request(
            "GET",
            f"{base_url}{ROUTE_PREFERENCES}",
            headers={"Authorization": f"Bearer {session_token}"},
        )
        try:
            return RemotePreferenceSnapshot.model_validate(unwrap_data(data) or {})
        except ValidationError as e:
            raise MeshClientError(f"Malformed preferences payload: {e}") from e

    async def update_preferences(
        self,
        base_url: str,
        session_token: str,
        changes: dict[str, Any],
    ) -> None:
        """Write preference fields to the user's profile."""
        await self._request(
            "PUT",
            f"{base_url}{ROUTE_PREFERENCES}",
            headers={"Authorization": f"Bearer {session_token}"},
            body=changes,
        )

    async def __aenter__(self) -> "MeshClient":
        """Async context manager entry."""
        await self._get_session()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        await self.close()
