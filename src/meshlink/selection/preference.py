"""
Selection preference reconciliation and remote sync.

The local record and the user's profile record are reconciled with
last-write-wins on the whole record. Local changes are pushed to the
profile in the background; a failed push never blocks the local value.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from meshlink.api.client import MeshClient, MeshClientError
from meshlink.api.models import RemotePreferenceSnapshot
from meshlink.config.constants import PREFERENCE_DEBOUNCE, PREFERENCE_KEY
from meshlink.core.types import KeyValueStore, SelectionPreference


logger = logging.getLogger(__name__)


def reconcile(
    local: SelectionPreference,
    remote: SelectionPreference | RemotePreferenceSnapshot,
) -> SelectionPreference:
    """
    Merge local and remote preference records.

    The record with the strictly greater `updated_at` wins in full. Fields
    are never mixed across records, so a result like auto-fastest from one
    side with a stale pin from the other cannot occur.

    Returns:
        `local` itself when remote is not newer, else the remote record.
    """
    if isinstance(remote, RemotePreferenceSnapshot):
        remote = remote.to_preference()

    if remote.updated_at <= local.updated_at:
        return local

    return remote


def load_preference(store: KeyValueStore) -> SelectionPreference | None:
    """Read the persisted local preference record."""
    data = store.load(PREFERENCE_KEY)
    if not isinstance(data, dict):
        return None

    try:
        return SelectionPreference.from_dict(data)
    except (TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed stored preference: {e}")
        return None


def save_preference(store: KeyValueStore, preference: SelectionPreference) -> None:
    """Persist the local preference record."""
    store.save(PREFERENCE_KEY, preference.to_dict())


def to_remote_payload(preference: SelectionPreference) -> dict[str, Any]:
    """Profile API field names for a preference record."""
    return {
        "autoFastest": preference.auto_fastest,
        "preferredServer": preference.pinned_endpoint_id,
        "updatedAt": preference.updated_at,
    }


class PreferenceSync:
    """
    Background sync of the selection preference with the user's profile.

    Writes are debounced and fire-and-forget. A failed write leaves the
    change pending; it is retried with the next push or the next fetch.
    """

    def __init__(
        self,
        client: MeshClient,
        base_url: Callable[[], str | None],
        debounce: float = PREFERENCE_DEBOUNCE,
    ) -> None:
        """
        Initialize preference sync.

        Args:
            client: Shared mesh client.
            base_url: Returns the active endpoint's base URL at call time.
            debounce: Seconds to coalesce writes.
        """
        self._client = client
        self._base_url = base_url
        self._debounce = debounce
        self._session_token: str | None = None
        self._pending: SelectionPreference | None = None
        self._push_task: asyncio.Task[None] | None = None
        self._last_error: str | None = None

    def set_session(self, session_token: str | None) -> None:
        """Attach or clear the authenticated session used for profile calls."""
        self._session_token = session_token

    @property
    def has_session(self) -> bool:
        """Check if profile calls are possible."""
        return self._session_token is not None

    @property
    def has_pending(self) -> bool:
        """Check if a local change has not reached the profile yet."""
        return self._pending is not None

    @property
    def last_error(self) -> str | None:
        """Error message of the last failed profile call."""
        return self._last_error

    def schedule_push(self, preference: SelectionPreference) -> None:
        """
        Queue a preference for upload.

        Restarts the debounce window; only the latest record is sent.
        """
        self._pending = preference

        if not self.has_session:
            logger.debug("No session, preference change queued")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop, preference change left pending for the next sync")
            return

        if self._push_task is not None and not self._push_task.done():
            self._push_task.cancel()

        self._push_task = loop.create_task(self._push_later())

    async def _push_later(self) -> None:
        await asyncio.sleep(self._debounce)
        await self.push_now()

    async def push_now(self) -> bool:
        """
        Upload the pending preference immediately.

        Returns:
            True if nothing was pending or the write succeeded.
        """
        preference = self._pending
        base_url = self._base_url()
        if preference is None:
            return True
        if self._session_token is None or not base_url:
            return False

        try:
            await self._client.update_preferences(
                base_url, self._session_token, to_remote_payload(preference)
            )
        except MeshClientError as e:
            self._last_error = str(e)
            logger.warning(f"Preference sync failed, will retry later: {e}")
            return False

        # A newer change may have been queued while the write was in flight
        if self._pending is preference:
            self._pending = None
        self._last_error = None
        return True

    async def fetch(self) -> RemotePreferenceSnapshot | None:
        """
        Read the profile preference and flush pending local changes.

        Returns:
            The remote snapshot, or None if unavailable.
        """
        base_url = self._base_url()
        if self._session_token is None or not base_url:
            return None

        try:
            snapshot = await self._client.get_preferences(base_url, self._session_token)
        except MeshClientError as e:
            self._last_error = str(e)
            logger.warning(f"Could not fetch remote preferences: {e}")
            return None

        self._last_error = None

        # A pending change older than the profile record lost the reconcile
        if self._pending is not None:
            if self._pending.updated_at <= snapshot.updated_at:
                self._pending = None
            else:
                await self.push_now()

        return snapshot

    async def close(self) -> None:
        """Cancel a scheduled push."""
        if self._push_task is not None and not self._push_task.done():
            self._push_task.cancel()
            try:
                await self._push_task
            except asyncio.CancelledError:
                pass
        self._push_task = None
