"""
Tests for the realtime broadcast relay.

Room bookkeeping is tested directly; the WebSocket endpoint and the relay
client run against a real aiohttp TestServer.
"""

import asyncio

import pytest
from aiohttp import test_utils, web

from clipboard_sync.exceptions import RelayError
from clipboard_sync.protocol import BroadcastHint
from clipboard_sync.sync import RelayClient, RelayServer, RoomManager


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class Recorder:
    """Send function that records every event it is handed."""

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def __call__(self, event):
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.events.append(event)


# =============================================================================
# RoomManager
# =============================================================================


class TestRoomManager:
    def test_join_and_members(self):
        rooms = RoomManager()
        rooms.register("c1", Recorder())
        rooms.register("c2", Recorder())
        rooms.join("c1", "AB12C")
        rooms.join("c2", " AB12C ")

        assert rooms.members("AB12C") == {"c1", "c2"}
        assert rooms.room_of("c2") == "AB12C"

    def test_joining_new_room_leaves_old(self):
        rooms = RoomManager()
        rooms.register("c1", Recorder())
        rooms.join("c1", "AAAAA")

        previous = rooms.join("c1", "BBBBB")

        assert previous == "AAAAA"
        assert rooms.members("AAAAA") == set()
        assert rooms.members("BBBBB") == {"c1"}

    def test_blank_room_just_leaves(self):
        rooms = RoomManager()
        rooms.register("c1", Recorder())
        rooms.join("c1", "AAAAA")
        rooms.join("c1", "   ")
        assert rooms.room_of("c1") is None

    def test_disconnect_cleans_up(self):
        rooms = RoomManager()
        rooms.register("c1", Recorder())
        rooms.join("c1", "AAAAA")

        rooms.disconnect("c1")

        assert rooms.members("AAAAA") == set()
        assert len(rooms) == 0

    def test_join_unknown_connection(self):
        rooms = RoomManager()
        assert rooms.join("ghost", "AAAAA") is None
        assert rooms.members("AAAAA") == set()

    async def test_publish_excludes_sender(self):
        rooms = RoomManager()
        sender, peer, outsider = Recorder(), Recorder(), Recorder()
        rooms.register("s", sender)
        rooms.register("p", peer)
        rooms.register("o", outsider)
        rooms.join("s", "AAAAA")
        rooms.join("p", "AAAAA")
        rooms.join("o", "BBBBB")

        delivered = await rooms.publish("AAAAA", BroadcastHint("AAAAA", "ct", 3), sender="s")

        assert delivered == 1
        assert sender.events == []
        assert outsider.events == []
        assert peer.events == [
            {"type": "clipboard:updated", "room": "AAAAA", "ciphertext": "ct", "version": 3}
        ]

    async def test_failing_peer_does_not_block_others(self):
        rooms = RoomManager()
        broken, healthy = Recorder(fail=True), Recorder()
        rooms.register("b", broken)
        rooms.register("h", healthy)
        rooms.join("b", "AAAAA")
        rooms.join("h", "AAAAA")

        delivered = await rooms.publish("AAAAA", BroadcastHint("AAAAA", "ct", 1))

        assert delivered == 1
        assert len(healthy.events) == 1

    async def test_publish_to_empty_room(self):
        assert await RoomManager().publish("AAAAA", BroadcastHint("AAAAA", "ct", 1)) == 0


# =============================================================================
# WebSocket endpoint
# =============================================================================


@pytest.fixture
async def relay_app():
    relay = RelayServer(heartbeat=None)
    app = web.Application()
    app.router.add_get("/ws", relay.websocket_endpoint)
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        yield relay, client


async def connect(relay, client, room=None):
    ws = await client.ws_connect("/ws")
    hello = await ws.receive_json(timeout=2)
    assert hello["type"] == "connected"
    if room is not None:
        await ws.send_json({"type": "join", "room": room})
        await wait_until(lambda: hello["client_id"] in relay.rooms.members(room))
    return ws, hello["client_id"]


class TestRelayServer:
    async def test_connected_event(self, relay_app):
        relay, client = relay_app
        ws, client_id = await connect(relay, client)
        assert client_id
        assert len(relay.rooms) == 1
        await ws.close()

    async def test_update_reaches_peers_not_sender(self, relay_app):
        relay, client = relay_app
        alice, _ = await connect(relay, client, "AB12C")
        bob, _ = await connect(relay, client, "AB12C")

        await alice.send_json(
            {"type": "clipboard:update", "room": "AB12C", "ciphertext": "blob", "version": 2}
        )

        received = await bob.receive_json(timeout=2)
        assert received == {
            "type": "clipboard:updated",
            "room": "AB12C",
            "ciphertext": "blob",
            "version": 2,
        }
        with pytest.raises(asyncio.TimeoutError):
            await alice.receive_json(timeout=0.2)

        await alice.close()
        await bob.close()

    async def test_update_defaults_to_joined_room(self, relay_app):
        relay, client = relay_app
        alice, _ = await connect(relay, client, "AB12C")
        bob, _ = await connect(relay, client, "AB12C")

        await alice.send_json({"type": "clipboard:update", "ciphertext": "blob", "version": 1})

        assert (await bob.receive_json(timeout=2))["version"] == 1
        await alice.close()
        await bob.close()

    async def test_other_rooms_do_not_receive(self, relay_app):
        relay, client = relay_app
        alice, _ = await connect(relay, client, "AAAAA")
        carol, _ = await connect(relay, client, "BBBBB")

        await alice.send_json({"type": "clipboard:update", "ciphertext": "blob", "version": 1})

        with pytest.raises(asyncio.TimeoutError):
            await carol.receive_json(timeout=0.2)
        await alice.close()
        await carol.close()

    async def test_ping_pong(self, relay_app):
        relay, client = relay_app
        ws, _ = await connect(relay, client)
        await ws.send_json({"type": "ping"})
        assert await ws.receive_json(timeout=2) == {"type": "pong"}
        await ws.close()

    async def test_malformed_messages_are_ignored(self, relay_app):
        relay, client = relay_app
        ws, _ = await connect(relay, client, "AB12C")

        await ws.send_str("not json")
        await ws.send_json(["not", "an", "object"])
        await ws.send_json({"type": "clipboard:update", "ciphertext": 5, "version": "x"})
        await ws.send_json({"type": "join"})
        await ws.send_json({"type": "ping"})

        assert await ws.receive_json(timeout=2) == {"type": "pong"}
        await ws.close()

    async def test_disconnect_removes_membership(self, relay_app):
        relay, client = relay_app
        ws, client_id = await connect(relay, client, "AB12C")

        await ws.close()

        await wait_until(lambda: client_id not in relay.rooms.members("AB12C"))
        assert len(relay.rooms) == 0


# =============================================================================
# RelayClient
# =============================================================================


class TestRelayClient:
    async def test_receives_hints(self, relay_app):
        relay, client = relay_app
        hints = asyncio.Queue()
        relay_client = RelayClient(str(client.make_url("/ws")), room="AB12C")
        relay_client.on_hint = hints.put
        await relay_client.start()
        try:
            await relay_client.wait_connected()
            await wait_until(lambda: len(relay.rooms.members("AB12C")) == 1)

            peer, _ = await connect(relay, client, "AB12C")
            await peer.send_json({"type": "clipboard:update", "ciphertext": "blob", "version": 4})

            hint = await asyncio.wait_for(hints.get(), 2)
            assert hint == BroadcastHint(room="AB12C", ciphertext="blob", version=4)
            await peer.close()
        finally:
            await relay_client.stop()

    async def test_publish_reaches_peer(self, relay_app):
        relay, client = relay_app
        peer, _ = await connect(relay, client, "AB12C")

        relay_client = RelayClient(str(client.make_url("/ws")), room="AB12C")
        await relay_client.start()
        try:
            await relay_client.wait_connected()
            await wait_until(lambda: len(relay.rooms.members("AB12C")) == 2)

            await relay_client.publish("blob", 9)

            received = await peer.receive_json(timeout=2)
            assert received["ciphertext"] == "blob"
            assert received["version"] == 9
        finally:
            await relay_client.stop()
            await peer.close()

    async def test_switching_rooms(self, relay_app):
        relay, client = relay_app
        relay_client = RelayClient(str(client.make_url("/ws")), room="AAAAA")
        await relay_client.start()
        try:
            await relay_client.wait_connected()
            await wait_until(lambda: len(relay.rooms.members("AAAAA")) == 1)

            await relay_client.join("BBBBB")

            await wait_until(lambda: len(relay.rooms.members("BBBBB")) == 1)
            assert relay.rooms.members("AAAAA") == set()
        finally:
            await relay_client.stop()

    async def test_publish_when_not_connected(self):
        relay_client = RelayClient("http://127.0.0.1:9/ws", room="AB12C")
        with pytest.raises(RelayError):
            await relay_client.publish("blob", 1)

    async def test_connection_failure_reports_and_retries(self):
        errors = []
        relay_client = RelayClient("http://127.0.0.1:9/ws", room="AB12C", reconnect_delay=0.05)
        relay_client.on_error = errors.append
        await relay_client.start()
        try:
            await wait_until(lambda: len(errors) >= 2)
            assert not relay_client.is_connected()
        finally:
            await relay_client.stop()
