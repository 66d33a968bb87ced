# src/rpc/gateway.py — v1
"""Typed coroutine wrappers around Titler's automation scheduler object."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, get_args

from titlerbridge.config.settings import Settings
from titlerbridge.core.errors import MalformedResponse, RpcParseError, UnsupportedKind
from titlerbridge.core.models import DefinitionKind, FeedbackValue
from titlerbridge.rpc.play_state import fold_play_states
from titlerbridge.rpc.webchannel import RemoteObject

logger = logging.getLogger(__name__)

SCHEDULER_OBJECT = "scheduler"

DEFINITION_KINDS: tuple[str, ...] = get_args(DefinitionKind)

# Field of the _cmp_v1_query reply carrying each kind.
_DEFINITION_REPLY_FIELDS: dict[str, str] = {
    "actions": "companion_actions",
    "presets": "companion_presets",
    "feedbacks": "companion_feedbacks",
    "lastUpdateTimestamp": "lastUpdateTimestamp",
}

REGISTRY_CHANGED_SIGNAL = "_cmp_v1_handleActorRegistryChangeEvent"
FEEDBACK_CHANGED_SIGNAL = "_cmp_v1_handleFeedbackChangeEvent"

RegistryChangedHandler = Callable[[Any], None]
FeedbackChangedHandler = Callable[[str, str, Any, Any], None]


class RpcGateway:
    """Every call is its own round trip; nothing is deduplicated or batched."""

    def __init__(self, scheduler: RemoteObject, settings: Settings) -> None:
        self._scheduler = scheduler
        self._settings = settings

    async def call(self, method: str, *args: Any) -> Any:
        return await self._scheduler.invoke(method, *args)

    async def get_image_set(
        self, tag: str | None = None, include_mime_prefix: bool | None = None
    ) -> dict[str, str]:
        """Fetch the named images used by feedback states."""
        tag = tag or self._settings.image_set_tag
        if include_mime_prefix is None:
            include_mime_prefix = self._settings.include_mime_prefix
        reply = await self.call("getImageSet", tag, include_mime_prefix)
        if not isinstance(reply, Mapping):
            raise RpcParseError(f"getImageSet({tag!r}) did not return a mapping")
        return {str(name): payload for name, payload in reply.items()}

    async def query_definitions(self, kind: str) -> Any:
        """Fetch action/preset/feedback definitions or the last update timestamp.

        Raises:
            UnsupportedKind: If ``kind`` is not one of DEFINITION_KINDS.
            RpcParseError: If the reply is not a mapping.
        """
        if kind not in _DEFINITION_REPLY_FIELDS:
            raise UnsupportedKind(kind)
        reply = await self.call("_cmp_v1_query", kind)
        if not isinstance(reply, Mapping):
            raise RpcParseError(f"_cmp_v1_query({kind!r}) did not return a mapping")
        return reply.get(_DEFINITION_REPLY_FIELDS[kind])

    async def query_feedback_state(
        self, actor_id: str, feedback_id: str, options: Mapping[str, Any] | None = None
    ) -> FeedbackValue:
        """Fetch one feedback's state with layer play states folded in.

        Raises:
            MalformedResponse: If the reply is not a JSON object.
        """
        raw = await self.call(
            "_cmp_v1_queryFeedbackState", actor_id, feedback_id, dict(options or {})
        )
        value = _parse_state(raw)
        play_states = await self.query_layer_play_states()
        return fold_play_states(value, play_states)

    async def query_layer_play_states(self) -> dict[str, Any]:
        """Layer key -> ``{"playState": ...}``; empty when Titler has none."""
        reply = await self.call("getValueForKey", self._settings.layer_state_key)
        if not isinstance(reply, Mapping):
            return {}
        return dict(reply)

    async def notify_client_connected(
        self,
        client_id: str | None = None,
        version: str | None = None,
        info: Mapping[str, Any] | None = None,
    ) -> Any:
        """Tell Titler who is connected so it can run its startup logic."""
        return await self.call(
            "notifyClientConnected",
            client_id or self._settings.client_id,
            version or self._settings.client_version,
            dict(info or {}),
        )

    async def on_registry_changed(self, handler: RegistryChangedHandler) -> None:
        await self._scheduler.connect(REGISTRY_CHANGED_SIGNAL, handler)

    async def on_feedback_changed(self, handler: FeedbackChangedHandler) -> None:
        await self._scheduler.connect(FEEDBACK_CHANGED_SIGNAL, handler)


def _parse_state(raw: Any) -> FeedbackValue:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, (str, bytes, bytearray)):
        raise MalformedResponse("_cmp_v1_queryFeedbackState", f"unexpected {type(raw).__name__}")
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise MalformedResponse("_cmp_v1_queryFeedbackState", str(exc)) from exc
    if not isinstance(value, dict):
        raise MalformedResponse(
            "_cmp_v1_queryFeedbackState", f"expected object, got {type(value).__name__}"
        )
    return value
