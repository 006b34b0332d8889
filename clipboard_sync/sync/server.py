"""
Realtime broadcast relay, server side.

Rooms are keyed by session code. A connection sits in at most one room;
hints published to a room reach every other member. Delivery is
best-effort: nothing is acknowledged, persisted or checked against the
ledger, and a failing peer never blocks the others.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from aiohttp import WSMsgType, web

from ..protocol import BroadcastHint

logger = logging.getLogger(__name__)

SendFunc = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class RelayConnection:
    """A connected relay peer."""

    connection_id: str
    send: SendFunc
    room: str | None = None
    connected_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())


class RoomManager:
    """Owns room membership for the relay.

    Example:
        >>> rooms = RoomManager()
        >>> rooms.register("c1", ws1.send_json)
        >>> rooms.register("c2", ws2.send_json)
        >>> rooms.join("c1", "AB12C")
        >>> rooms.join("c2", "AB12C")
        >>> await rooms.publish("AB12C", hint, sender="c1")  # reaches c2 only
        1
    """

    def __init__(self) -> None:
        self._connections: dict[str, RelayConnection] = {}
        self._rooms: dict[str, set[str]] = {}

    def register(self, connection_id: str, send: SendFunc) -> RelayConnection:
        connection = RelayConnection(connection_id=connection_id, send=send)
        self._connections[connection_id] = connection
        logger.debug(f"Relay peer connected: {connection_id}")
        return connection

    def join(self, connection_id: str, room: str) -> str | None:
        """Move a connection into a room, leaving its previous one.

        Args:
            connection_id: Registered connection
            room: Session code; surrounding whitespace is ignored

        Returns:
            The room the connection left, if any
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.warning(f"Join from unknown connection {connection_id}")
            return None

        room = room.strip()
        previous = self.leave(connection_id)
        if room:
            connection.room = room
            self._rooms.setdefault(room, set()).add(connection_id)
            logger.debug(f"{connection_id} joined room {room}")
        return previous

    def leave(self, connection_id: str) -> str | None:
        """Take a connection out of its room."""
        connection = self._connections.get(connection_id)
        if connection is None or connection.room is None:
            return None

        room = connection.room
        connection.room = None
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        return room

    def disconnect(self, connection_id: str) -> None:
        """Forget a connection and its membership."""
        self.leave(connection_id)
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Relay peer disconnected: {connection_id}")

    def room_of(self, connection_id: str) -> str | None:
        connection = self._connections.get(connection_id)
        return connection.room if connection else None

    def members(self, room: str) -> set[str]:
        return set(self._rooms.get(room, ()))

    def __len__(self) -> int:
        return len(self._connections)

    async def publish(
        self,
        room: str,
        hint: BroadcastHint,
        sender: str | None = None,
    ) -> int:
        """Fan a hint out to every member of a room except the sender.

        Returns:
            Number of peers the hint was handed to without error
        """
        targets = [
            self._connections[cid]
            for cid in self._rooms.get(room, ())
            if cid != sender and cid in self._connections
        ]
        if not targets:
            return 0

        event = hint.to_dict()
        results = await asyncio.gather(
            *(target.send(event) for target in targets),
            return_exceptions=True,
        )

        delivered = 0
        for target, result in zip(targets, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Dropped hint v{hint.version} for {target.connection_id} in {room}: {result}"
                )
            else:
                delivered += 1
        return delivered


class RelayServer:
    """WebSocket endpoint for the broadcast relay.

    Example with aiohttp:
        >>> relay = RelayServer()
        >>> app = aiohttp.web.Application()
        >>> app.router.add_get("/ws", relay.websocket_endpoint)
    """

    def __init__(self, rooms: RoomManager | None = None, heartbeat: float | None = 30.0) -> None:
        self.rooms = rooms or RoomManager()
        self.heartbeat = heartbeat

    async def websocket_endpoint(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=self.heartbeat)
        await ws.prepare(request)

        client_id = str(uuid.uuid4())
        self.rooms.register(client_id, ws.send_json)
        try:
            await ws.send_json({"type": "connected", "client_id": client_id})

            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        message = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning(f"Ignoring non-JSON relay message from {client_id}")
                        continue
                    if not isinstance(message, dict):
                        logger.warning(f"Ignoring non-object relay message from {client_id}")
                        continue
                    await self.handle_message(client_id, message, ws.send_json)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"Relay connection {client_id} closed with {ws.exception()}")
        finally:
            self.rooms.disconnect(client_id)

        return ws

    async def handle_message(
        self,
        client_id: str,
        message: dict[str, Any],
        send: SendFunc,
    ) -> None:
        """Handle one decoded message from a peer.

        Args:
            client_id: Connection that sent the message
            message: Decoded JSON object
            send: Reply channel back to the same peer
        """
        msg_type = message.get("type")

        if msg_type == "join":
            room = message.get("room")
            if not isinstance(room, str):
                logger.warning(f"Ignoring join without room from {client_id}")
                return
            self.rooms.join(client_id, room)

        elif msg_type == "clipboard:update":
            room = message.get("room") or self.rooms.room_of(client_id)
            ciphertext = message.get("ciphertext")
            version = message.get("version")
            if not isinstance(room, str) or not room.strip():
                logger.debug(f"Dropping update from {client_id}: no room")
                return
            if (
                not isinstance(ciphertext, str)
                or isinstance(version, bool)
                or not isinstance(version, int)
            ):
                logger.warning(f"Ignoring malformed clipboard:update from {client_id}")
                return
            room = room.strip()
            hint = BroadcastHint(room=room, ciphertext=ciphertext, version=version)
            await self.rooms.publish(room, hint, sender=client_id)

        elif msg_type == "ping":
            await send({"type": "pong"})

        else:
            logger.debug(f"Ignoring relay message type {msg_type!r} from {client_id}")
