# src/api/models.py — v2
"""Host-facing models: status levels, feedback events and the host callback protocol."""

from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field

StatusLevel = Literal["ok", "warning"]


class FeedbackEvent(BaseModel):
    """A host poll: which feedback (``actor~feedback``) and its options."""

    type: str
    options: dict[str, Any] = Field(default_factory=dict)


class BridgeStatus(BaseModel):
    """Last status reported to the host."""

    level: StatusLevel
    message: str


@runtime_checkable
class HostCallbacks(Protocol):
    """What the bridge needs from the automation host."""

    def status(self, level: StatusLevel, message: str) -> None:
        """Show connection health in the host UI."""

    def check_feedbacks(self, *feedback_keys: str) -> None:
        """Ask the host to re-poll the given feedbacks (all when empty)."""

    def refresh_integrations(self, bridge: Any) -> None:
        """Rebuild the action/preset/feedback catalog."""
