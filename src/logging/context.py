# src/logging/context.py — v2
"""Contextual logging support: attach connection epoch and feedback key to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Connection context is set by the session task; feedback context by each
# rebuild job (asyncio tasks copy the context, so jobs never see each other's).
_connection_epoch: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "connection_epoch", default=None
)
_remote_url: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "remote_url", default=None
)
_feedback_key: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "feedback_key", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    connection_epoch: int | None = None
    remote_url: str | None = None
    feedback_key: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        connection_epoch=_connection_epoch.get(),
        remote_url=_remote_url.get(),
        feedback_key=_feedback_key.get(),
    )


def set_connection_context(epoch: int, remote_url: str) -> None:
    """Set connection-level context (called once per session)."""
    _connection_epoch.set(epoch)
    _remote_url.set(remote_url)


def set_feedback_context(feedback_key: str | None) -> None:
    """Set feedback-level context (called per rebuild job)."""
    _feedback_key.set(feedback_key)


def clear_context() -> None:
    """Reset all context variables."""
    _connection_epoch.set(None)
    _remote_url.set(None)
    _feedback_key.set(None)
