# src/cache/rebuilder.py — v1
"""Background job that drains the miss queue into the feedback cache.

One owned asyncio task per rebuilder. While misses are queued it wakes every
``interval_s``, drains a snapshot of the whole queue, resolves every miss
concurrently and, once they have all settled, asks the host to re-poll so
fresh entries show up without waiting for the host's own poll cycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from titlerbridge.cache.feedback_cache import FeedbackCache
from titlerbridge.cache.fingerprint import make_fingerprint
from titlerbridge.cache.staleness import StalenessTracker
from titlerbridge.core.errors import BridgeError
from titlerbridge.core.models import FeedbackIdentity, FeedbackValue, MissEntry
from titlerbridge.logging.context import set_feedback_context

logger = logging.getLogger(__name__)

Resolver = Callable[[FeedbackIdentity, dict[str, Any]], Awaitable[FeedbackValue]]


class CacheRebuilder:
    """Resolve queued misses through ``resolve`` and write the results."""

    def __init__(
        self,
        cache: FeedbackCache,
        staleness: StalenessTracker,
        resolve: Resolver,
        on_settled: Callable[[], None],
        interval_s: float = 0.5,
    ) -> None:
        self._cache = cache
        self._staleness = staleness
        self._resolve = resolve
        self._on_settled = on_settled
        self.interval_s = interval_s
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def ensure_running(self) -> None:
        """Start the tick loop unless it is already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="feedback-cache-rebuilder"
        )

    def cancel(self) -> None:
        """Stop ticking and abandon in-flight queries."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while self._cache.misses:
            await asyncio.sleep(self.interval_s)
            await self.tick()

    async def tick(self) -> int:
        """Resolve every queued miss once. Returns the number of writes."""
        jobs = []
        for miss in self._cache.misses.drain():
            identity = FeedbackIdentity.parse(miss.key)
            if identity is None:
                logger.debug("Skipping miss with malformed key %r", miss.key)
                continue
            version = self._staleness.claim(identity.key)
            jobs.append(self._rebuild_entry(identity, miss, version))

        if not jobs:
            return 0

        results = await asyncio.gather(*jobs, return_exceptions=True)
        written = 0
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error while rebuilding a feedback entry",
                    exc_info=result,
                )
            elif result:
                written += 1

        logger.debug("Rebuild tick settled: %d/%d written", written, len(jobs))
        self._on_settled()
        return written

    async def _rebuild_entry(
        self, identity: FeedbackIdentity, miss: MissEntry, version: int
    ) -> bool:
        set_feedback_context(miss.key)
        try:
            value = await self._resolve(identity, miss.options)
        except BridgeError as exc:
            logger.debug("Miss for %s dropped: %s", miss.key, exc)
            return False

        if not self._staleness.accepts(identity.key, version):
            logger.debug("Discarding outdated result for %s", miss.key)
            return False

        self._cache.write(make_fingerprint(miss.key, miss.options), value)
        return True
