# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

Other modules import these types from here rather than redefining them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# A resolved feedback value: display fields, an ``imageName`` reference
# and/or a ``png64`` payload, exactly as Titler returns them.
FeedbackValue = dict[str, Any]

IDENTITY_SEPARATOR = "~"

DefinitionKind = Literal["actions", "presets", "feedbacks", "lastUpdateTimestamp"]
PlayState = Literal["running", "paused", "unknown"]


# === FEEDBACK IDENTITY ===


class FeedbackIdentity(BaseModel):
    """What a feedback asks about, independent of its options."""

    model_config = ConfigDict(frozen=True)

    actor_id: str
    feedback_id: str

    @property
    def key(self) -> str:
        """Bare identity key, e.g. ``actor1~fb1``."""
        return f"{self.actor_id}{IDENTITY_SEPARATOR}{self.feedback_id}"

    @classmethod
    def parse(cls, key: str) -> FeedbackIdentity | None:
        """Split a host feedback key into actor and feedback ids.

        Only the first two ``~`` components are used. Returns None when the
        key does not name an actor and a feedback.
        """
        components = key.split(IDENTITY_SEPARATOR)
        if len(components) < 2:
            return None
        return cls(actor_id=components[0], feedback_id=components[1])


# === CACHE MODELS ===


class MissEntry(BaseModel):
    """A feedback key/options pair waiting for the rebuilder."""

    key: str
    options: dict[str, Any] = Field(default_factory=dict)


# === CONNECTION ===


class ConnectionState(str, Enum):
    """Lifecycle of the Titler connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
