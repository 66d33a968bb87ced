# src/api/facade.py — v2
"""Public API facade — the object an automation host embeds.

Usage:
    from titlerbridge.api.facade import TitlerBridge
    bridge = TitlerBridge(host, settings)
    bridge.start()                       # inside the host's event loop
    value = bridge.feedback(event)       # synchronous, never waits on Titler

The bridge wires the connection manager, the feedback cache and its rebuilder
together and turns Titler's push notifications into host re-polls.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from titlerbridge.api.models import BridgeStatus, FeedbackEvent, HostCallbacks, StatusLevel
from titlerbridge.cache.evaluation import FeedbackEvaluator
from titlerbridge.cache.feedback_cache import FeedbackCache, MissQueue
from titlerbridge.cache.rebuilder import CacheRebuilder
from titlerbridge.cache.staleness import StalenessTracker
from titlerbridge.config.settings import Settings
from titlerbridge.connection.context import ConnectionContext
from titlerbridge.connection.manager import ConnectionManager, Connector
from titlerbridge.connection.timers import Timer
from titlerbridge.core.models import FeedbackIdentity, FeedbackValue
from titlerbridge.imaging.compositor import render_state
from titlerbridge.imaging.image_set import ImageSet

logger = logging.getLogger(__name__)


class TitlerBridge:
    """Feedback cache and connection lifecycle behind the host's callbacks."""

    def __init__(
        self,
        host: HostCallbacks,
        settings: Settings | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.host = host
        self.settings = settings or Settings()
        self.images = ImageSet()
        self.staleness = StalenessTracker()
        self.cache = FeedbackCache(MissQueue())
        self.evaluator = FeedbackEvaluator(self.cache, self.staleness, self.images)
        self.rebuilder = CacheRebuilder(
            self.cache,
            self.staleness,
            resolve=self._query_feedback_details,
            on_settled=self.host.check_feedbacks,
            interval_s=self.settings.cache_rebuild_interval_s,
        )
        self.cache.misses.set_listener(self.rebuilder.ensure_running)
        self.connection = ConnectionManager(
            self.settings,
            on_connected=self._on_connected,
            on_disconnected=self._on_disconnected,
            connector=connector,
        )
        self._registry_refresh = Timer(
            self.settings.registry_refresh_debounce_s,
            self.refresh_integrations,
            name="registry-refresh",
        )
        self.time_of_last_definition_update = datetime.now(timezone.utc)
        self.last_status: BridgeStatus | None = None

    # --- Lifecycle ---

    def start(self) -> None:
        """Report offline and begin connecting. Must run inside the event loop."""
        self._report_status("warning", "offline")
        self.connection.open()

    async def stop(self) -> None:
        """Tear everything down; the bridge can be started again."""
        self._registry_refresh.cancel()
        self.rebuilder.cancel()
        self.cache.misses.clear()
        self.staleness.clear()
        await self.connection.close()

    destroy = stop

    async def update_config(self, settings: Settings) -> None:
        """Apply new settings and reconnect."""
        self.settings = settings
        self.rebuilder.interval_s = settings.cache_rebuild_interval_s
        self._registry_refresh.cancel()
        self._registry_refresh = Timer(
            settings.registry_refresh_debounce_s,
            self.refresh_integrations,
            name="registry-refresh",
        )
        await self.connection.reconfigure(settings)

    # --- Host entry points ---

    def feedback(
        self, event: FeedbackEvent | str, options: Mapping[str, Any] | None = None
    ) -> FeedbackValue | None:
        """Current value for a polled feedback, or None until it is known."""
        if isinstance(event, FeedbackEvent):
            key, options = event.type, event.options
        else:
            key = event
        return self.evaluator.evaluate(key, options)

    def prime_feedback_state(self, key: str, options: Mapping[str, Any] | None = None) -> None:
        """Queue a feedback for resolution before the host first polls it."""
        if self.cache.lookup(key, options) is None:
            logger.debug("Priming %s", key)

    def evict_by_prefix(self, prefix: str) -> int:
        return self.cache.evict_by_prefix(prefix)

    def refresh_integrations(self) -> None:
        """Have the host rebuild its action/preset/feedback catalog."""
        self.host.refresh_integrations(self)

    async def query_definitions(self, kind: str) -> Any:
        context = self.connection.require_context()
        return await context.gateway.query_definitions(kind)

    async def check_for_definition_updates(self) -> bool:
        """Refresh integrations when Titler's definitions changed since last seen.

        Returns:
            True when a refresh was triggered.
        """
        response = await self.query_definitions("lastUpdateTimestamp")
        last_update = _parse_timestamp(response)
        if last_update is None:
            logger.warning("Unrecognised lastUpdateTimestamp reply: %r", response)
            return False
        if last_update < self.time_of_last_definition_update:
            return False
        self.time_of_last_definition_update = last_update
        self.refresh_integrations()
        return True

    # --- Connection callbacks ---

    async def _on_connected(self, context: ConnectionContext) -> None:
        gateway = context.gateway
        self.images.replace(
            await gateway.get_image_set(
                self.settings.image_set_tag, self.settings.include_mime_prefix
            )
        )
        logger.info("Loaded %d images from %r", len(self.images), self.settings.image_set_tag)

        await gateway.on_registry_changed(self._handle_registry_changed)
        await gateway.on_feedback_changed(self._handle_feedback_changed)

        self.refresh_integrations()
        self._report_status("ok", "Connected")

        await gateway.notify_client_connected(
            self.settings.client_id, self.settings.client_version, {}
        )

    def _on_disconnected(self) -> None:
        self.rebuilder.cancel()
        self._registry_refresh.cancel()
        self.cache.clear()
        self.cache.misses.clear()
        self.staleness.clear()
        self.images.clear()
        self._report_status("warning", "Disconnected")

    # --- Push notifications ---

    def _handle_registry_changed(self, element_id: Any = None) -> None:
        logger.info("Titler registry updated (%s)", element_id)
        self._registry_refresh.restart()

    def _handle_feedback_changed(
        self, actor_id: str, feedback_id: str, options: Any = None, state: Any = None
    ) -> None:
        key = FeedbackIdentity(actor_id=str(actor_id), feedback_id=str(feedback_id)).key
        self.staleness.mark_stale(key)
        logger.debug("Feedback %s changed remotely", key)
        self.host.check_feedbacks(key)

    # --- Rebuilder resolver ---

    async def _query_feedback_details(
        self, identity: FeedbackIdentity, options: dict[str, Any]
    ) -> FeedbackValue:
        context = self.connection.require_context()
        state = await context.gateway.query_feedback_state(
            identity.actor_id, identity.feedback_id, options
        )
        rendered = await render_state(state, self.images)
        context.ensure_active()
        return rendered

    # --- Helpers ---

    def _report_status(self, level: StatusLevel, message: str) -> None:
        status = BridgeStatus(level=level, message=message)
        if status == self.last_status:
            return
        self.last_status = status
        self.host.status(level, message)


def _parse_timestamp(response: Any) -> datetime | None:
    """Accept an ISO string or a ``{"lastUpdate": ...}`` mapping."""
    if isinstance(response, Mapping):
        response = response.get("lastUpdate")
    if not isinstance(response, str):
        return None
    try:
        parsed = datetime.fromisoformat(response.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
