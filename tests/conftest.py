# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides fast settings, a recording host, PNG payload helpers and an
in-memory Titler peer speaking the WebChannel protocol.
No network: the fake connector hands out in-memory sockets.
"""

from __future__ import annotations

import asyncio
import base64
import io
import json
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest
from PIL import Image

from titlerbridge.config.settings import Settings

SCHEDULER_METHODS = [
    "getImageSet",
    "_cmp_v1_query",
    "_cmp_v1_queryFeedbackState",
    "getValueForKey",
    "notifyClientConnected",
]
SCHEDULER_SIGNALS = [
    "_cmp_v1_handleActorRegistryChangeEvent",
    "_cmp_v1_handleFeedbackChangeEvent",
]
SIGNAL_BASE_INDEX = 100


# === FAKE TITLER ===


class FakeSocket:
    """One in-memory WebSocket between the bridge and FakeTitler."""

    def __init__(self, titler: FakeTitler) -> None:
        self._titler = titler
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, text: str) -> None:
        if self.closed:
            raise OSError("socket closed")
        message = json.loads(text)
        self.sent.append(message)
        reply = self._titler.handle(message)
        if reply is not None:
            self._incoming.put_nowait(json.dumps(reply))

    def push(self, payload: dict[str, Any]) -> None:
        self._incoming.put_nowait(json.dumps(payload))

    def close_remote(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeTitler:
    """Publishes a ``scheduler`` object with canned replies."""

    def __init__(self) -> None:
        self.images: dict[str, str] = {}
        self.definitions: dict[str, Any] = {
            "companion_actions": {"play": {"label": "Play"}},
            "companion_presets": {"glow": {"category": "Glow"}},
            "companion_feedbacks": {"state": {"type": "advanced"}},
            "lastUpdateTimestamp": {"lastUpdate": "2000-01-01T00:00:00Z"},
        }
        self.feedback_states: dict[tuple[str, str], Any] = {}
        self.play_states: dict[str, Any] = {}
        self.publish_scheduler = True
        self.refuse = False
        self.connect_attempts = 0
        self.calls: list[tuple[str, list[Any]]] = []
        self.subscribed: list[str] = []
        self.sockets: list[FakeSocket] = []

    @property
    def socket(self) -> FakeSocket:
        return self.sockets[-1]

    def describe(self) -> dict[str, Any]:
        if not self.publish_scheduler:
            return {}
        return {
            "scheduler": {
                "methods": [[name, i] for i, name in enumerate(SCHEDULER_METHODS)],
                "signals": [
                    [name, SIGNAL_BASE_INDEX + i] for i, name in enumerate(SCHEDULER_SIGNALS)
                ],
                "properties": [],
                "enums": {},
            }
        }

    def handle(self, message: dict[str, Any]) -> dict[str, Any] | None:
        kind = message["type"]
        if kind == 3:
            return {"type": 10, "id": message["id"], "data": self.describe()}
        if kind == 7:
            self.subscribed.append(SCHEDULER_SIGNALS[message["signal"] - SIGNAL_BASE_INDEX])
            return None
        if kind == 6:
            name = SCHEDULER_METHODS[message["method"]]
            args = message["args"]
            self.calls.append((name, args))
            return {"type": 10, "id": message["id"], "data": self._invoke(name, args)}
        return None

    def _invoke(self, name: str, args: list[Any]) -> Any:
        if name == "getImageSet":
            return self.images
        if name == "_cmp_v1_query":
            return self.definitions
        if name == "_cmp_v1_queryFeedbackState":
            state = self.feedback_states.get((args[0], args[1]), {})
            return state if isinstance(state, str) else json.dumps(state)
        if name == "getValueForKey":
            return self.play_states
        return "{}"

    def calls_to(self, name: str) -> list[list[Any]]:
        return [args for called, args in self.calls if called == name]

    def emit(self, signal: str, *args: Any) -> None:
        self.socket.push(
            {
                "type": 1,
                "object": "scheduler",
                "signal": SIGNAL_BASE_INDEX + SCHEDULER_SIGNALS.index(signal),
                "args": list(args),
            }
        )

    def connector(self, url: str, **kwargs: Any):
        @asynccontextmanager
        async def _connect():
            self.connect_attempts += 1
            if self.refuse:
                raise OSError(f"connection refused: {url}")
            sock = FakeSocket(self)
            self.sockets.append(sock)
            try:
                yield sock
            finally:
                sock.closed = True

        return _connect()


class RecordingHost:
    """HostCallbacks implementation that records every call."""

    def __init__(self) -> None:
        self.statuses: list[tuple[str, str]] = []
        self.checks: list[tuple[str, ...]] = []
        self.refreshes = 0

    def status(self, level: str, message: str) -> None:
        self.statuses.append((level, message))

    def check_feedbacks(self, *feedback_keys: str) -> None:
        self.checks.append(feedback_keys)

    def refresh_integrations(self, bridge: Any) -> None:
        self.refreshes += 1


# === FIXTURES: Settings / collaborators ===


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short timers so lifecycle tests run quickly."""
    return Settings(
        _env_file=None,
        reconnect_interval_s=0.1,
        cache_rebuild_interval_s=0.01,
        registry_refresh_debounce_s=0.05,
    )


@pytest.fixture
def fake_titler() -> FakeTitler:
    return FakeTitler()


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Await until ``predicate()`` holds, failing after ``timeout`` seconds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


# === FIXTURES: Images ===


def encode_png(size: tuple[int, int], color: tuple[int, int, int, int]) -> str:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def decode_png(payload: str) -> Image.Image:
    if payload.startswith("data:"):
        payload = payload.split(",", 1)[1]
    return Image.open(io.BytesIO(base64.b64decode(payload))).convert("RGBA")


@pytest.fixture
def make_png() -> Callable[..., str]:
    """Factory: ``make_png((w, h), (r, g, b, a))`` -> base64 PNG."""
    return encode_png


@pytest.fixture
def read_png() -> Callable[[str], Image.Image]:
    return decode_png
