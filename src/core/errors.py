# src/core/errors.py — v1
"""Bridge error taxonomy.

Nothing here is fatal to the process: transport errors drive the reconnect
watchdog, parse and compositing errors degrade silently, and only
UnsupportedKind propagates to its caller.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every error raised by the bridge."""


class TransportError(BridgeError):
    """Socket open/error/close, or a request abandoned by a closed channel."""


class NotConnectedError(TransportError):
    """A remote call was attempted while no connection context is live."""


class ConnectionEpochExpired(TransportError):
    """A result arrived after the connection it was issued on went away."""

    def __init__(self, epoch: int) -> None:
        self.epoch = epoch
        super().__init__(f"Connection epoch {epoch} is no longer active")


class RpcParseError(BridgeError):
    """A remote response could not be interpreted."""


class MalformedResponse(RpcParseError):
    """A feedback-state reply was not a JSON object."""

    def __init__(self, method: str, detail: str) -> None:
        self.method = method
        super().__init__(f"Malformed response from {method}: {detail}")


class UnsupportedKind(BridgeError):
    """A definition query used a kind the remote does not serve."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"Definition kind not supported: {kind!r}")


class CompositingError(BridgeError):
    """Base and overlay payloads could not be merged."""
