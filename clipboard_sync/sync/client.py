"""
Realtime broadcast relay, client side.

Keeps a WebSocket open to the relay, rejoins the current room after every
reconnect, publishes hints after successful saves and hands incoming hints
to a callback. Hints are advisory; the replica decides what to do with them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp

from ..exceptions import RelayError
from ..protocol import BroadcastHint

logger = logging.getLogger(__name__)

HintCallback = Callable[[BroadcastHint], Awaitable[None] | None]


class RelayClient:
    """Client for the broadcast relay.

    Example:
        >>> client = RelayClient("http://localhost:4000/ws", room="AB12C")
        >>> client.on_hint = replica.apply_hint
        >>> await client.start()
        >>> await client.wait_connected()
        >>> await client.publish("ciphertext...", version=3)
        >>> await client.stop()
    """

    def __init__(
        self,
        url: str,
        room: str | None = None,
        auto_reconnect: bool = True,
        reconnect_delay: float = 2.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the relay client.

        Args:
            url: WebSocket URL of the relay (http(s) or ws(s) scheme)
            room: Session code to join once connected
            auto_reconnect: Reconnect after the connection drops
            reconnect_delay: Seconds to wait before reconnecting
            session: Optional aiohttp session to reuse; not closed by stop()
        """
        self.url = url
        self.room = room
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay
        self._session = session
        self._owns_session = session is None

        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._connected = asyncio.Event()
        self._running = False
        self._connection_task: asyncio.Task[None] | None = None
        self.client_id: str | None = None

        # Callbacks
        self.on_hint: HintCallback | None = None
        self.on_connected: Callable[[], None] | None = None
        self.on_disconnected: Callable[[], None] | None = None
        self.on_error: Callable[[str], None] | None = None

    async def start(self) -> None:
        """Start the connection loop in the background."""
        if self._running:
            return

        self._running = True
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._connection_task = asyncio.create_task(self._connection_loop())
        logger.info(f"Relay client started: {self.url}")

    async def stop(self) -> None:
        """Stop the client and close the connection."""
        self._running = False

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if self._connection_task:
            self._connection_task.cancel()
            try:
                await self._connection_task
            except asyncio.CancelledError:
                pass
            self._connection_task = None

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

        self._connected.clear()
        logger.info("Relay client stopped")

    def is_connected(self) -> bool:
        return self._connected.is_set() and self._ws is not None and not self._ws.closed

    async def wait_connected(self, timeout: float = 5.0) -> None:
        """Block until the connection is up and the room joined."""
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def join(self, room: str) -> None:
        """Switch rooms; remembered across reconnects."""
        self.room = room
        if self.is_connected():
            await self._send({"type": "join", "room": room})

    async def publish(self, ciphertext: str, version: int) -> None:
        """Send a hint to the other members of the current room.

        Raises:
            RelayError: Not connected or the send failed
        """
        if not self.room:
            raise RelayError("No room joined")
        await self._send(
            {
                "type": "clipboard:update",
                "room": self.room,
                "ciphertext": ciphertext,
                "version": version,
            }
        )

    async def _send(self, message: dict[str, Any]) -> None:
        if not self.is_connected():
            raise RelayError("Relay not connected", room=self.room)
        assert self._ws is not None
        try:
            await self._ws.send_json(message)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise RelayError("Relay send failed", room=self.room, cause=e) from e

    async def _connection_loop(self) -> None:
        """Main connection loop with auto-reconnect."""
        while self._running:
            try:
                await self._websocket_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Relay connection error: {e}")
                if self.on_error:
                    self.on_error(str(e))
            finally:
                was_connected = self._connected.is_set()
                self._connected.clear()
                self._ws = None
                if was_connected and self.on_disconnected:
                    self.on_disconnected()

            if self.auto_reconnect and self._running:
                logger.info(f"Reconnecting in {self.reconnect_delay}s...")
                await asyncio.sleep(self.reconnect_delay)
            else:
                break

    async def _websocket_loop(self) -> None:
        assert self._session is not None
        async with self._session.ws_connect(self.url) as ws:
            self._ws = ws
            if self.room:
                await ws.send_json({"type": "join", "room": self.room})
            self._connected.set()
            if self.on_connected:
                self.on_connected()

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise RelayError("WebSocket error", room=self.room, cause=ws.exception())

    async def _handle_text(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Failed to parse relay message")
            return

        msg_type = data.get("type") if isinstance(data, dict) else None
        if msg_type == "connected":
            self.client_id = data.get("client_id")
        elif msg_type == "clipboard:updated":
            ciphertext = data.get("ciphertext")
            version = data.get("version")
            if not isinstance(ciphertext, str) or not isinstance(version, int):
                logger.warning("Ignoring malformed clipboard:updated")
                return
            hint = BroadcastHint(
                room=data.get("room") or self.room or "",
                ciphertext=ciphertext,
                version=version,
            )
            await self._dispatch(hint)

    async def _dispatch(self, hint: BroadcastHint) -> None:
        if self.on_hint is None:
            return
        try:
            result = self.on_hint(hint)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Hint callback failed: {e}")
