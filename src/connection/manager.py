# src/connection/manager.py — v1
"""Connection lifecycle and reconnection watchdog.

State machine::

    disconnected --open()--> connecting --init ok--> connected
         ^                       |                      |
         +------ error/close ----+----------------------+

Entering ``disconnected`` arms a single reconnect timer (unless one is armed
or the manager is closing); the timer calls ``open()``, which disarms it.
The loop retries forever and is the only recovery path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from titlerbridge.config.settings import Settings
from titlerbridge.connection.context import ConnectionContext
from titlerbridge.connection.timers import Timer
from titlerbridge.core.errors import BridgeError, NotConnectedError, RpcParseError, TransportError
from titlerbridge.core.models import ConnectionState
from titlerbridge.logging.context import set_connection_context
from titlerbridge.rpc.gateway import SCHEDULER_OBJECT, RpcGateway
from titlerbridge.rpc.webchannel import WebChannelClient

logger = logging.getLogger(__name__)

Connector = Callable[..., AbstractAsyncContextManager[Any]]
ConnectedCallback = Callable[[ConnectionContext], Awaitable[None]]
DisconnectedCallback = Callable[[], None]


class ConnectionManager:
    """Owns the WebSocket to Titler and the connection context built on it."""

    def __init__(
        self,
        settings: Settings,
        on_connected: ConnectedCallback,
        on_disconnected: DisconnectedCallback,
        connector: Connector | None = None,
    ) -> None:
        self._settings = settings
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._connector: Connector = connector or websockets.connect
        self._state = ConnectionState.DISCONNECTED
        self._epoch = 0
        self._context: ConnectionContext | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing = False
        self._connected = asyncio.Event()
        self._reconnect = Timer(settings.reconnect_interval_s, self.open, name="reconnect")
        self.attempts = 0

    # --- Introspection ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def context(self) -> ConnectionContext | None:
        return self._context

    @property
    def reconnect_armed(self) -> bool:
        return self._reconnect.armed

    def require_context(self) -> ConnectionContext:
        """Live context, or NotConnectedError."""
        if self._context is None or not self._context.active:
            raise NotConnectedError(f"Not connected to {self._settings.websocket_url}")
        return self._context

    async def wait_connected(self, timeout: float | None = None) -> ConnectionContext:
        await asyncio.wait_for(self._connected.wait(), timeout)
        return self.require_context()

    # --- Lifecycle ---

    def open(self) -> None:
        """Start a connection attempt unless one is already running."""
        self._reconnect.cancel()
        self._closing = False
        if self._task is not None and not self._task.done():
            return
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            self._run_session(), name="titler-connection"
        )

    async def close(self) -> None:
        """Stop retrying and tear down the current session."""
        self._closing = True
        self._reconnect.cancel()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def reconfigure(self, settings: Settings) -> None:
        """Reconnect using new settings."""
        await self.close()
        self._settings = settings
        self._reconnect = Timer(settings.reconnect_interval_s, self.open, name="reconnect")
        self.open()

    # --- Session ---

    async def _run_session(self) -> None:
        self._epoch += 1
        self.attempts += 1
        epoch = self._epoch
        url = self._settings.websocket_url
        set_connection_context(epoch, url)
        context: ConnectionContext | None = None
        logger.debug("Opening %s (attempt %d)", url, self.attempts)

        try:
            async with self._connector(url, max_size=None) as ws:
                channel = WebChannelClient(_sender(ws))
                pump = asyncio.create_task(self._pump(ws, channel), name="titler-pump")
                try:
                    objects = await channel.initialize()
                    scheduler = objects.get(SCHEDULER_OBJECT)
                    if scheduler is None:
                        raise RpcParseError(f"Remote did not publish {SCHEDULER_OBJECT!r}")

                    context = ConnectionContext(
                        epoch=epoch, gateway=RpcGateway(scheduler, self._settings)
                    )
                    self._context = context
                    self._set_state(ConnectionState.CONNECTED)
                    self._connected.set()
                    logger.info("Connected to %s", url)

                    await self._on_connected(context)
                    await pump
                finally:
                    pump.cancel()
                    channel.close()
        except (OSError, WebSocketException, BridgeError) as exc:
            logger.warning("Connection error on %s: %s", url, exc)
        except Exception:
            logger.exception("Unexpected error in session on %s", url)
        finally:
            if context is not None:
                context.invalidate()
            self._context = None
            self._enter_disconnected()

    async def _pump(self, ws: Any, channel: WebChannelClient) -> None:
        try:
            async for message in ws:
                try:
                    channel.handle_message(message)
                except Exception:
                    logger.exception("Failed to handle WebChannel frame")
        except ConnectionClosed as exc:
            logger.warning("Connection lost: %s", exc)
        finally:
            channel.close()
        logger.info("Connection to %s closed", self._settings.websocket_url)

    def _enter_disconnected(self) -> None:
        self._connected.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        self._on_disconnected()
        if not self._closing and self._reconnect.start():
            logger.debug("Reconnect in %.1fs", self._reconnect.delay_s)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            logger.debug("Connection state %s -> %s", self._state.value, state.value)
        self._state = state


def _sender(ws: Any) -> Callable[[str], Awaitable[None]]:
    async def send(text: str) -> None:
        try:
            await ws.send(text)
        except ConnectionClosed as exc:
            raise TransportError(f"Connection closed while sending: {exc}") from exc

    return send
