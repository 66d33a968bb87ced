# tests/integration/bridge/test_int_bridge_lifecycle.py — v1
"""Integration tests for the bridge over a real WebSocket.

Covers: api/facade.py, connection/manager.py, rpc/webchannel.py,
rpc/gateway.py, cache/rebuilder.py, imaging/compositor.py
No Titler required: a local websockets server answers with FakeTitler's replies.
"""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
import websockets

from titlerbridge.api.facade import TitlerBridge
from titlerbridge.core.models import ConnectionState
from titlerbridge.rpc.gateway import FEEDBACK_CHANGED_SIGNAL, SCHEDULER_OBJECT

pytestmark = pytest.mark.integration


class TitlerServer:
    """Serves FakeTitler's WebChannel replies on localhost."""

    def __init__(self, titler) -> None:
        self.titler = titler
        self.connections: list = []
        self.port = 0
        self._server = None

    async def start(self) -> None:
        self._server = await websockets.serve(self._handle, "127.0.0.1", self.port)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        self._server.close()
        await self._server.wait_closed()

    async def _handle(self, ws) -> None:
        self.connections.append(ws)
        async for raw in ws:
            reply = self.titler.handle(json.loads(raw))
            if reply is not None:
                await ws.send(json.dumps(reply))

    async def emit(self, signal: str, *args) -> None:
        indices = dict(self.titler.describe()[SCHEDULER_OBJECT]["signals"])
        await self.connections[-1].send(json.dumps({
            "type": 1, "object": SCHEDULER_OBJECT, "signal": indices[signal], "args": list(args),
        }))

    async def drop(self) -> None:
        await self.connections[-1].close()


@pytest_asyncio.fixture
async def server(fake_titler):
    server = TitlerServer(fake_titler)
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def bridge(server, fast_settings, host, eventually):
    settings = fast_settings.model_copy(update={"titler_host": "127.0.0.1", "titler_port": server.port})
    bridge = TitlerBridge(host, settings)
    bridge.start()
    await eventually(lambda: server.titler.calls_to("notifyClientConnected"))
    yield bridge
    await bridge.stop()


class TestBridgeOverWebSocket:
    @pytest.mark.asyncio
    async def test_feedback_round_trip(self, bridge, server, eventually):
        server.titler.feedback_states[("actor1", "fb1")] = {"text": "On air"}

        assert bridge.feedback("actor1~fb1", {"layer": 1}) is None
        await eventually(lambda: bridge.feedback("actor1~fb1", {"layer": 1}) is not None)

        assert bridge.feedback("actor1~fb1", {"layer": 1}) == {"text": "On air"}

    @pytest.mark.asyncio
    async def test_push_refreshes_entry(self, bridge, server, host, eventually):
        server.titler.feedback_states[("actor1", "fb1")] = {"text": "old"}
        bridge.feedback("actor1~fb1")
        await eventually(lambda: not bridge.rebuilder.running and len(bridge.cache) == 1)

        server.titler.feedback_states[("actor1", "fb1")] = {"text": "new"}
        await server.emit(FEEDBACK_CHANGED_SIGNAL, "actor1", "fb1", {}, {})
        await eventually(lambda: ("actor1~fb1",) in host.checks)

        await eventually(lambda: bridge.feedback("actor1~fb1") == {"text": "new"})

    @pytest.mark.asyncio
    async def test_overlay_composited(self, bridge, server, eventually, make_png, read_png):
        blue = make_png((4, 4), (0, 0, 255, 255))
        server.titler.images = {"P": blue}
        bridge.images.replace(await bridge.connection.require_context().gateway.get_image_set())

        server.titler.play_states = {"L": {"playState": "paused"}}
        server.titler.feedback_states[("actor1", "fb1")] = {
            "png64": make_png((4, 4), (255, 0, 0, 255)),
            "overlayQueryKey": "L",
            "overlayImageName_running": "Q",
            "overlayImageName_paused": "P",
        }

        bridge.feedback("actor1~fb1")
        await eventually(lambda: bridge.cache.get("actor1~fb1") is not None)

        value = bridge.feedback("actor1~fb1")
        assert read_png(value["png64"]).getpixel((2, 2)) == (0, 0, 255, 255)

    @pytest.mark.asyncio
    async def test_drop_and_reconnect(self, bridge, server, host, eventually):
        server.titler.feedback_states[("actor1", "fb1")] = {"text": "v1"}
        bridge.feedback("actor1~fb1")
        await eventually(lambda: bridge.cache.get("actor1~fb1") is not None)
        first_epoch = bridge.connection.epoch

        await server.drop()
        await eventually(lambda: ("warning", "Disconnected") in host.statuses)
        assert len(bridge.cache) == 0

        await eventually(lambda: bridge.connection.state is ConnectionState.CONNECTED)
        assert bridge.connection.epoch == first_epoch + 1
        await eventually(lambda: len(server.titler.calls_to("notifyClientConnected")) == 2)

        server.titler.feedback_states[("actor1", "fb1")] = {"text": "v2"}
        assert bridge.feedback("actor1~fb1") is None
        await eventually(lambda: bridge.feedback("actor1~fb1") == {"text": "v2"})


class TestUnreachableTitler:
    @pytest.mark.asyncio
    async def test_retries_while_unreachable(self, fake_titler, fast_settings, host, eventually):
        server = TitlerServer(fake_titler)
        await server.start()
        port = server.port
        await server.stop()

        settings = fast_settings.model_copy(update={"titler_host": "127.0.0.1", "titler_port": port})
        bridge = TitlerBridge(host, settings)
        bridge.start()
        await eventually(lambda: bridge.connection.attempts >= 2)
        assert bridge.connection.state is not ConnectionState.CONNECTED
        assert host.statuses[:2] == [("warning", "offline"), ("warning", "Disconnected")]
        await bridge.stop()
        assert not bridge.connection.reconnect_armed
