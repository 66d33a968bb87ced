# src/cache/feedback_cache.py — v1
"""In-memory feedback cache and the queue of misses waiting to be resolved."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterator, Mapping
from typing import Any

from titlerbridge.cache.fingerprint import make_fingerprint
from titlerbridge.core.models import FeedbackValue, MissEntry

logger = logging.getLogger(__name__)


class MissQueue:
    """FIFO of feedback key/options pairs with no valid cache entry.

    Entries are not deduplicated: a key polled twice before the rebuilder
    drains the queue appears twice.
    """

    def __init__(self, on_pending: Callable[[], None] | None = None) -> None:
        self._entries: deque[MissEntry] = deque()
        self._on_pending = on_pending

    def set_listener(self, on_pending: Callable[[], None] | None) -> None:
        """Callback fired after every push; it must be idempotent."""
        self._on_pending = on_pending

    def push(self, entry: MissEntry) -> None:
        self._entries.append(entry)
        if self._on_pending is not None:
            self._on_pending()

    def drain(self) -> list[MissEntry]:
        """Remove and return every entry currently queued."""
        snapshot = list(self._entries)
        self._entries.clear()
        return snapshot

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __iter__(self) -> Iterator[MissEntry]:
        return iter(list(self._entries))


class FeedbackCache:
    """Resolved feedback values keyed by fingerprint.

    Only the rebuilder writes; evaluation reads. Entries are never deleted
    one by one, only in bulk by prefix or when the connection drops.
    """

    def __init__(self, misses: MissQueue | None = None) -> None:
        self._entries: dict[str, FeedbackValue] = {}
        self.misses = misses if misses is not None else MissQueue()

    def lookup(
        self, key: str, options: Mapping[str, Any] | None = None
    ) -> FeedbackValue | None:
        """Return the cached value, or record a miss and return None."""
        value = self._entries.get(make_fingerprint(key, options))
        if value is None:
            self.record_miss(key, options)
        return value

    def record_miss(self, key: str, options: Mapping[str, Any] | None = None) -> None:
        self.misses.push(MissEntry(key=key, options=dict(options or {})))

    def get(self, fingerprint: str) -> FeedbackValue | None:
        """Raw read by fingerprint, without recording a miss."""
        return self._entries.get(fingerprint)

    def write(self, fingerprint: str, value: FeedbackValue) -> None:
        self._entries[fingerprint] = value

    def evict_by_prefix(self, prefix: str) -> int:
        """Drop every entry whose fingerprint starts with ``prefix``."""
        doomed = [fp for fp in self._entries if fp.startswith(prefix)]
        for fp in doomed:
            del self._entries[fp]
        if doomed:
            logger.debug("Evicted %d cache entries with prefix %r", len(doomed), prefix)
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries
