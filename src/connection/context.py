# src/connection/context.py — v1
"""Per-connection handle on the remote scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field

from titlerbridge.core.errors import ConnectionEpochExpired
from titlerbridge.rpc.gateway import RpcGateway


@dataclass
class ConnectionContext:
    """Gateway bound to one connection epoch.

    Components that issue remote calls receive the context explicitly and
    check it is still active before acting on a result.
    """

    epoch: int
    gateway: RpcGateway
    _active: bool = field(default=True, init=False)

    @property
    def active(self) -> bool:
        return self._active

    def invalidate(self) -> None:
        self._active = False

    def ensure_active(self) -> None:
        """Raise if the connection this context belongs to has gone away."""
        if not self._active:
            raise ConnectionEpochExpired(self.epoch)
