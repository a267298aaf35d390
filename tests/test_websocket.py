"""
Tests for the snapshot WebSocket server.

Verifies that:
1. New clients receive the current snapshot
2. State changes are pushed to connected clients
3. Client requests (get_state, get_stats, unknown, bad JSON) get the right reply
"""

import asyncio
import json

import pytest
import pytest_asyncio
from websockets.asyncio.client import connect

from cuedisplay.state.display_state import ColorUpdate, CueUpdate, DescriptionUpdate, SharedDisplayState
from cuedisplay.udp_listener.listener import CueListener
from cuedisplay.udp_listener.osc_parser import RGBAColor
from cuedisplay.utils.metrics import MetricsCollector
from cuedisplay.websocket.server import SnapshotWebSocketServer


async def recv_json(websocket, timeout=2.0):
    return json.loads(await asyncio.wait_for(websocket.recv(), timeout))


async def recv_until(websocket, predicate, timeout=2.0):
    """Read messages until one matches predicate."""
    async def _loop():
        while True:
            message = await recv_json(websocket, timeout)
            if predicate(message):
                return message
    return await asyncio.wait_for(_loop(), timeout)


def uri(server):
    return f"ws://127.0.0.1:{server.port}"


@pytest.fixture
def display():
    return SharedDisplayState()


@pytest_asyncio.fixture
async def ws_server(display):
    server = SnapshotWebSocketServer(display, host="127.0.0.1", port=0, poll_interval=0.02)
    await server.start()
    yield server
    await server.stop()


class TestSnapshotPush:
    """Test STATE messages."""

    @pytest.mark.asyncio
    async def test_initial_state_on_connect(self, ws_server, display):
        display.apply(CueUpdate("7"))
        async with connect(uri(ws_server)) as websocket:
            message = await recv_until(websocket, lambda m: m['type'] == 'STATE')
            assert message['payload']['cue'] == "7"
            assert message['payload']['description'] == ""
            assert message['payload']['color'] is None

    @pytest.mark.asyncio
    async def test_changes_are_pushed(self, ws_server, display):
        async with connect(uri(ws_server)) as websocket:
            await recv_until(websocket, lambda m: m['type'] == 'STATE')

            display.apply(CueUpdate("12"))
            display.apply(DescriptionUpdate("Storm"))
            display.apply(ColorUpdate(RGBAColor(255, 0, 0)))

            message = await recv_until(
                websocket,
                lambda m: m['type'] == 'STATE' and m['payload']['version'] == 3,
            )
            assert message['payload'] == {
                'cue': "12",
                'description': "Storm",
                'color': "#FF0000",
                'updated_at': message['payload']['updated_at'],
                'version': 3,
            }

    @pytest.mark.asyncio
    async def test_publish_only_on_change(self, display):
        server = SnapshotWebSocketServer(display, host="127.0.0.1", port=0)
        assert await server.publish_if_changed() is True
        assert await server.publish_if_changed() is False
        display.apply(CueUpdate("1"))
        assert await server.publish_if_changed() is True


class TestClientRequests:
    """Test request/response messages."""

    @pytest.mark.asyncio
    async def test_get_state(self, ws_server, display):
        async with connect(uri(ws_server)) as websocket:
            await recv_until(websocket, lambda m: m['type'] == 'STATE')
            await websocket.send(json.dumps({'type': 'get_state'}))
            message = await recv_until(websocket, lambda m: m['type'] == 'STATE')
            assert message['payload']['version'] == display.snapshot().version

    @pytest.mark.asyncio
    async def test_get_stats_with_listener(self, display):
        metrics = MetricsCollector()
        listener = CueListener(display=display, metrics=metrics)
        listener.handle_packet(b"/cue\0\0\0\0,s\0\0Act1Scene2\0\0")

        server = SnapshotWebSocketServer(display, listener=listener, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with connect(uri(server)) as websocket:
                await websocket.send(json.dumps({'type': 'get_stats'}))
                message = await recv_until(websocket, lambda m: m['type'] == 'STATS')
        finally:
            await server.stop()

        assert message['payload']['listener']['packets_applied'] == 1
        assert message['payload']['metrics']['udp_listener']['packets_received'] == 1
        assert message['payload']['metrics']['updates_applied'] == {'cue': 1}

    @pytest.mark.asyncio
    async def test_get_stats_without_listener(self, ws_server):
        async with connect(uri(ws_server)) as websocket:
            await websocket.send(json.dumps({'type': 'get_stats'}))
            message = await recv_until(websocket, lambda m: m['type'] == 'STATS')
            assert message['payload']['listener'] is None

    @pytest.mark.asyncio
    async def test_unknown_message_is_acknowledged(self, ws_server):
        async with connect(uri(ws_server)) as websocket:
            await websocket.send(json.dumps({'type': 'hello', 'request_id': 'r1'}))
            message = await recv_until(websocket, lambda m: m['type'] == 'ACK')
            assert message['payload'] == {'request_id': 'r1'}

    @pytest.mark.asyncio
    async def test_invalid_json(self, ws_server):
        async with connect(uri(ws_server)) as websocket:
            await websocket.send("not json")
            message = await recv_until(websocket, lambda m: m['type'] == 'ERROR')
            assert message['payload']['error'] == "Invalid JSON"

    @pytest.mark.asyncio
    async def test_non_object_json(self, ws_server):
        async with connect(uri(ws_server)) as websocket:
            await websocket.send("[1, 2]")
            message = await recv_until(websocket, lambda m: m['type'] == 'ERROR')
            assert message['payload']['error'] == "Invalid message"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_client_count_and_gauge(self, ws_server):
        async with connect(uri(ws_server)) as websocket:
            await recv_until(websocket, lambda m: m['type'] == 'STATE')
            assert ws_server.get_client_count() == 1
            assert ws_server.metrics.get_gauge('websocket.clients')['current'] == 1

        for _ in range(100):
            if ws_server.get_client_count() == 0:
                break
            await asyncio.sleep(0.01)
        assert ws_server.get_client_count() == 0

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, display):
        server = SnapshotWebSocketServer(display, host="127.0.0.1", port=0)
        await server.start()
        assert server.is_running()
        await server.stop()
        await server.stop()
        assert not server.is_running()

    def test_server_built_before_event_loop_starts(self, display):
        """The CLI constructs the server first and runs it under asyncio.run()."""
        server = SnapshotWebSocketServer(display, host="127.0.0.1", port=0, poll_interval=0.02)

        async def session():
            await server.start()
            try:
                async with connect(uri(server)) as first, connect(uri(server)) as second:
                    for websocket in (first, second):
                        await recv_until(websocket, lambda m: m['type'] == 'STATE')
                    display.apply(CueUpdate("7"))
                    for websocket in (first, second):
                        message = await recv_until(
                            websocket,
                            lambda m: m['type'] == 'STATE' and m['payload']['cue'] == "7",
                        )
                        assert message['payload']['version'] == 1
            finally:
                await server.stop()

        asyncio.run(session())
        assert not server.is_running()
