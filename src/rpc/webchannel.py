# src/rpc/webchannel.py — v1
"""Client side of the Qt WebChannel JSON protocol.

Titler publishes QObjects over a WebSocket. After an ``init`` exchange the
client holds one proxy per published object; method calls become
``invokeMethod`` messages answered by ``response`` messages carrying the same
id, and signals arrive as ``signal`` messages once the client has sent
``connectToSignal``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import IntEnum
from typing import Any

from titlerbridge.core.errors import RpcParseError, TransportError

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[None]]
SignalHandler = Callable[..., None]

# Qt emits "destroyed" on its own; the JS client never subscribes to it.
_IMPLICIT_SIGNALS = frozenset({0, "destroyed"})


class MessageType(IntEnum):
    SIGNAL = 1
    PROPERTY_UPDATE = 2
    INIT = 3
    IDLE = 4
    DEBUG = 5
    INVOKE_METHOD = 6
    CONNECT_TO_SIGNAL = 7
    DISCONNECT_FROM_SIGNAL = 8
    SET_PROPERTY = 9
    RESPONSE = 10


class RemoteObject:
    """Proxy for one QObject published on the channel."""

    def __init__(self, channel: WebChannelClient, name: str, data: Mapping[str, Any]) -> None:
        self._channel = channel
        self.name = name
        self._methods: dict[str, int] = {}
        self._signals: dict[str, int] = {}
        self._signal_names: dict[int, str] = {}
        self._handlers: dict[int, list[SignalHandler]] = {}
        self.properties: dict[str, Any] = {}
        self._property_names: dict[int, str] = {}

        for method_name, index in data.get("methods", []):
            self._methods[method_name] = index
            # Overloads are published as "name(QString,bool)"; keep the bare
            # name pointing at the first overload seen.
            self._methods.setdefault(method_name.split("(", 1)[0], index)

        for signal_name, index in data.get("signals", []):
            self._signals[signal_name] = index
            self._signal_names[index] = signal_name

        for entry in data.get("properties", []):
            index, prop_name = entry[0], entry[1]
            self._property_names[index] = prop_name
            self.properties[prop_name] = entry[3] if len(entry) > 3 else None

    def has_method(self, name: str) -> bool:
        return name in self._methods

    def has_signal(self, name: str) -> bool:
        return name in self._signals

    async def invoke(self, method: str, *args: Any) -> Any:
        """Call a remote method and wait for its response payload."""
        if method not in self._methods:
            raise RpcParseError(f"{self.name} has no method {method!r}")
        return await self._channel.request(
            {
                "type": MessageType.INVOKE_METHOD,
                "object": self.name,
                "method": self._methods[method],
                "args": list(args),
            }
        )

    async def connect(self, signal: str, handler: SignalHandler) -> None:
        """Register ``handler`` for a remote signal."""
        if signal not in self._signals:
            raise RpcParseError(f"{self.name} has no signal {signal!r}")
        index = self._signals[signal]
        handlers = self._handlers.setdefault(index, [])
        handlers.append(handler)
        if len(handlers) == 1 and signal not in _IMPLICIT_SIGNALS:
            await self._channel.send(
                {
                    "type": MessageType.CONNECT_TO_SIGNAL,
                    "object": self.name,
                    "signal": index,
                }
            )

    def dispatch_signal(self, index: int | str, args: list[Any]) -> None:
        for handler in list(self._handlers.get(index, [])):
            try:
                handler(*args)
            except Exception:
                logger.exception(
                    "Handler for %s.%s failed",
                    self.name, self._signal_names.get(index, index),
                )

    def update_properties(self, signals: Mapping[str, Any], properties: Mapping[str, Any]) -> None:
        for index, value in properties.items():
            name = self._property_names.get(_as_index(index))
            if name is not None:
                self.properties[name] = value
        for index, args in signals.items():
            if isinstance(args, list) or args is None:
                self.dispatch_signal(_as_index(index), list(args or []))


class WebChannelClient:
    """Request/response bookkeeping and message routing for one socket."""

    def __init__(self, send: Sender) -> None:
        self._send = send
        self._next_id = 0
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self.objects: dict[str, RemoteObject] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Mapping[str, Any]) -> None:
        if self._closed:
            raise TransportError("WebChannel is closed")
        try:
            await self._send(json.dumps(message))
        except OSError as exc:
            raise TransportError(f"Send failed: {exc}") from exc

    async def request(self, message: Mapping[str, Any]) -> Any:
        """Send a message that expects a ``response`` and await its data."""
        if self._closed:
            raise TransportError("WebChannel is closed")
        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self.send({**message, "id": request_id})
            return await future
        finally:
            self._pending.pop(request_id, None)

    async def initialize(self) -> dict[str, RemoteObject]:
        """Run the ``init`` exchange and build the object proxies."""
        data = await self.request({"type": MessageType.INIT})
        if not isinstance(data, Mapping):
            raise RpcParseError("init response did not describe any objects")
        self.objects = {
            name: RemoteObject(self, name, object_data)
            for name, object_data in data.items()
        }
        await self.send({"type": MessageType.IDLE})
        logger.debug("WebChannel initialised with objects: %s", sorted(self.objects))
        return self.objects

    def handle_message(self, raw: str | bytes) -> None:
        """Route one incoming frame. Frames of the wrong shape are dropped."""
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-JSON frame")
            return
        if not isinstance(message, dict):
            logger.debug("Ignoring non-object frame")
            return

        kind = message.get("type")
        if kind == MessageType.RESPONSE:
            self._handle_response(message)
        elif kind == MessageType.SIGNAL:
            self._handle_signal(message)
        elif kind == MessageType.PROPERTY_UPDATE:
            self._handle_property_update(message)
        else:
            logger.debug("Ignoring WebChannel message type %r", kind)

    def _handle_response(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        if not isinstance(request_id, int):
            logger.debug("Ignoring response with id %r", request_id)
            return
        future = self._pending.get(request_id)
        if future is not None and not future.done():
            future.set_result(message.get("data"))

    def _handle_signal(self, message: dict[str, Any]) -> None:
        target = self._target(message.get("object"))
        index = message.get("signal")
        args = message.get("args") or []
        if target is None or not isinstance(index, (int, str)) or not isinstance(args, list):
            logger.debug("Ignoring malformed signal frame")
            return
        target.dispatch_signal(index, args)

    def _handle_property_update(self, message: dict[str, Any]) -> None:
        updates = message.get("data") or []
        if not isinstance(updates, list):
            updates = []
        for update in updates:
            if not isinstance(update, Mapping):
                logger.debug("Ignoring malformed property update %r", update)
                continue
            target = self._target(update.get("object"))
            signals = update.get("signals") or {}
            properties = update.get("properties") or {}
            if target is None or not isinstance(signals, Mapping) or not isinstance(
                properties, Mapping
            ):
                continue
            target.update_properties(signals, properties)
        asyncio.get_running_loop().create_task(self._send_idle())

    def _target(self, name: Any) -> RemoteObject | None:
        return self.objects.get(name) if isinstance(name, str) else None

    async def _send_idle(self) -> None:
        if self._closed:
            return
        try:
            await self.send({"type": MessageType.IDLE})
        except TransportError as exc:
            logger.debug("Idle notification not sent: %s", exc)

    def close(self, reason: str = "connection closed") -> None:
        """Fail every pending request; the channel cannot be reused."""
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(reason))
        self._pending.clear()


def _as_index(key: Any) -> int | str:
    """Property/signal keys arrive as JSON object keys, i.e. numeric strings."""
    try:
        return int(key)
    except (TypeError, ValueError):
        return str(key)
