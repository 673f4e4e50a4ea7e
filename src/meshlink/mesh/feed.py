"""
Peer mesh push feed.

Websocket on the active endpoint's stream URL carrying peer mesh updates,
with:
- Auto-reconnection with exponential backoff
- Heartbeat monitoring
- Retargeting when the active endpoint changes
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum, auto
from typing import Any

import aiohttp
import orjson

from meshlink.config.constants import (
    MAX_RECONNECT_DELAY,
    MIN_RECONNECT_DELAY,
    RECONNECT_MULTIPLIER,
    WS_CLOSE_TIMEOUT,
    WS_MAX_MESSAGE_SIZE,
    WS_PING_INTERVAL,
)


logger = logging.getLogger(__name__)


MessageHandler = Callable[[Any], None]


class ConnectionState(Enum):
    """WebSocket connection state."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()
    CLOSED = auto()


class PeerFeed:
    """
    Push channel for peer mesh updates.

    Messages are decoded and passed to the handler as-is; the handler
    decides whether they are peer updates.
    """

    def __init__(
        self,
        stream_url: str,
        message_handler: MessageHandler,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Initialize the feed.

        Args:
            stream_url: Websocket URL of the active endpoint.
            message_handler: Called with each decoded message.
            session: Session to connect with; one is created and owned if omitted.
        """
        self._url = stream_url
        self._message_handler = message_handler
        self._session = session
        self._owns_session = session is None

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_delay = MIN_RECONNECT_DELAY
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._message_count = 0

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def url(self) -> str:
        """Current target URL."""
        return self._url

    @property
    def message_count(self) -> int:
        """Get total messages received."""
        return self._message_count

    async def connect(self) -> bool:
        """
        Establish the websocket connection.

        Returns:
            True if connected successfully.
        """
        if self._state == ConnectionState.CONNECTED:
            return True

        self._state = ConnectionState.CONNECTING

        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
                self._owns_session = True

            logger.info(f"[PeerFeed] Connecting to {self._url}")

            self._ws = await self._session.ws_connect(
                self._url,
                heartbeat=WS_PING_INTERVAL,
                max_msg_size=WS_MAX_MESSAGE_SIZE,
            )

            self._state = ConnectionState.CONNECTED
            self._reconnect_delay = MIN_RECONNECT_DELAY
            logger.info("[PeerFeed] Connected")
            return True

        except Exception as e:
            logger.warning(f"[PeerFeed] Connection failed: {e}")
            self._state = ConnectionState.DISCONNECTED
            return False

    async def disconnect(self) -> None:
        """Close the websocket and any owned session."""
        self._running = False
        self._state = ConnectionState.CLOSED

        if self._ws and not self._ws.closed:
            await self._ws.close()

        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

        self._ws = None
        if self._owns_session:
            self._session = None

    async def retarget(self, stream_url: str) -> None:
        """
        Follow the active endpoint.

        Closing the current socket makes the run loop reconnect to the new URL.
        """
        if stream_url == self._url:
            return

        logger.info(f"[PeerFeed] Switching to {stream_url}")
        self._url = stream_url
        self._reconnect_delay = MIN_RECONNECT_DELAY

        if self._ws and not self._ws.closed:
            await self._ws.close()

    async def _reconnect(self) -> None:
        """Attempt reconnection with exponential backoff."""
        self._state = ConnectionState.RECONNECTING

        while self._running and self._state != ConnectionState.CONNECTED:
            logger.debug(f"[PeerFeed] Reconnecting in {self._reconnect_delay:.1f}s")
            await asyncio.sleep(self._reconnect_delay)

            if await self.connect():
                break

            self._reconnect_delay = min(
                self._reconnect_delay * RECONNECT_MULTIPLIER,
                MAX_RECONNECT_DELAY,
            )

    def _handle_message(self, msg: aiohttp.WSMessage) -> bool:
        """
        Process a websocket message.

        Returns:
            False if the connection should be closed.
        """
        if msg.type == aiohttp.WSMsgType.TEXT:
            try:
                data = orjson.loads(msg.data)
            except orjson.JSONDecodeError as e:
                logger.warning(f"[PeerFeed] Invalid JSON: {e}")
                return True

            self._message_count += 1
            try:
                self._message_handler(data)
            except Exception as e:
                logger.error(f"[PeerFeed] Handler error: {e}")

        elif msg.type == aiohttp.WSMsgType.ERROR:
            logger.error(f"[PeerFeed] Error: {msg.data}")
            return False

        elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
            logger.info("[PeerFeed] Connection closed")
            return False

        return True

    async def run(self) -> None:
        """Main message loop with auto-reconnection."""
        self._running = True

        while self._running:
            if self._state != ConnectionState.CONNECTED:
                if not await self.connect():
                    await self._reconnect()
                    continue

            try:
                if self._ws is None:
                    await self._reconnect()
                    continue

                async for msg in self._ws:
                    if not self._running:
                        break

                    if not self._handle_message(msg):
                        break

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[PeerFeed] Error in message loop: {e}")

            if self._running:
                self._state = ConnectionState.DISCONNECTED
                await self._reconnect()

    def start(self) -> asyncio.Task[None]:
        """Start the message loop as a task."""
        self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Stop the message loop and disconnect."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=WS_CLOSE_TIMEOUT)
            except (TimeoutError, asyncio.CancelledError):
                pass
            self._task = None

        await self.disconnect()
