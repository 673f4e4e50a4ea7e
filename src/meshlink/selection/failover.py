"""
Active endpoint change notification and re-authentication.

`FailoverNotifier` has exactly one subscriber. Registering a new
callback replaces the previous one; pass None to unsubscribe.

`ReauthCoordinator` is the usual subscriber: it drops the session bound
to the old endpoint and logs in again against the new one. It owns the
in-progress flag that keeps a failover during a login from starting a
second login.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from meshlink.config.constants import REAUTH_SETTLE_DELAY


logger = logging.getLogger(__name__)

ActiveEndpointCallback = Callable[[str | None, str], None]


class FailoverNotifier:
    """Single-subscriber hook fired when the active endpoint id changes."""

    def __init__(self) -> None:
        self._callback: ActiveEndpointCallback | None = None
        self._fired = 0

    def on_active_endpoint_change(self, callback: ActiveEndpointCallback | None) -> None:
        """
        Register the subscriber, replacing any previous one.

        Args:
            callback: Called with (previous_id, new_id), or None to clear.
        """
        if self._callback is not None and callback is not None:
            logger.debug("Replacing active endpoint change subscriber")
        self._callback = callback

    @property
    def has_subscriber(self) -> bool:
        """Check if a callback is registered."""
        return self._callback is not None

    @property
    def fired_count(self) -> int:
        """Number of changes delivered to a subscriber."""
        return self._fired

    def notify(self, previous_id: str | None, new_id: str) -> bool:
        """
        Deliver a selection result.

        The initial selection (no previous id) and no-op reselections are
        not changes and are not delivered.

        Returns:
            True if the subscriber was called.
        """
        if previous_id is None or previous_id == new_id:
            return False

        callback = self._callback
        if callback is None:
            return False

        self._fired += 1
        try:
            callback(previous_id, new_id)
        except Exception as e:
            logger.error(f"Active endpoint change handler error: {e}", exc_info=True)

        return True


class ReauthCoordinator:
    """
    Re-authenticates after a failover.

    Cooperative contract: `in_progress` is set before the old session is
    dropped and cleared only when the login coroutine finishes, whatever
    its outcome. Changes delivered while it is set are ignored.
    """

    def __init__(
        self,
        can_reauth: Callable[[], bool],
        disconnect: Callable[[], None],
        login: Callable[[], Awaitable[Any]],
        settle_delay: float = REAUTH_SETTLE_DELAY,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            can_reauth: True when there is an authenticated session worth renewing.
            disconnect: Drops the session bound to the old endpoint.
            login: Logs in against the newly active endpoint.
            settle_delay: Seconds to wait between disconnect and login.
        """
        self._can_reauth = can_reauth
        self._disconnect = disconnect
        self._login = login
        self._settle_delay = settle_delay
        self._in_progress = False
        self._task: asyncio.Task[None] | None = None
        self._suppressed = 0

    @property
    def in_progress(self) -> bool:
        """Check if a re-authentication is in flight."""
        return self._in_progress

    @property
    def suppressed_count(self) -> int:
        """Changes ignored because a re-authentication was in flight."""
        return self._suppressed

    def attach(self, notifier: FailoverNotifier) -> None:
        """Subscribe to a notifier."""
        notifier.on_active_endpoint_change(self.handle_change)

    def detach(self, notifier: FailoverNotifier) -> None:
        """Unsubscribe from a notifier."""
        notifier.on_active_endpoint_change(None)

    def handle_change(self, previous_id: str | None, new_id: str) -> None:
        """Notifier callback."""
        if self._in_progress:
            self._suppressed += 1
            logger.debug(f"Re-auth in progress, ignoring switch {previous_id} -> {new_id}")
            return

        if not self._can_reauth():
            return

        logger.info(f"Active endpoint changed from {previous_id} to {new_id}, re-authenticating")
        self._in_progress = True
        self._disconnect()
        self._task = asyncio.create_task(self._relogin())

    async def _relogin(self) -> None:
        try:
            await asyncio.sleep(self._settle_delay)
            await self._login()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Re-authentication failed: {e}")
        finally:
            self._in_progress = False

    async def wait(self) -> None:
        """Wait for the in-flight re-authentication, if any."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def close(self) -> None:
        """Cancel an in-flight re-authentication."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._in_progress = False
