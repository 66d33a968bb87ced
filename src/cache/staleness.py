# src/cache/staleness.py — v1
"""Stale markers set by Titler's feedback-changed push notifications.

Each identity key also carries a monotonic version. The rebuilder claims the
version when it dispatches a query; a result is only written if no new stale
marker arrived while that query was in flight.
"""

from __future__ import annotations

STALE = "stale"


class StalenessTracker:
    """Pending change set keyed by bare identity key (``actor~feedback``)."""

    def __init__(self) -> None:
        self._pending: dict[str, str] = {}
        self._versions: dict[str, int] = {}

    def mark_stale(self, key: str) -> int:
        """Flag ``key`` as changed remotely and return its new version."""
        version = self._versions.get(key, 0) + 1
        self._versions[key] = version
        self._pending[key] = STALE
        return version

    def is_stale(self, key: str) -> bool:
        return key in self._pending

    def claim(self, key: str) -> int:
        """Clear the marker for a dispatched miss; return the version it saw."""
        self._pending.pop(key, None)
        return self._versions.get(key, 0)

    def accepts(self, key: str, version: int) -> bool:
        """True when no stale marker arrived after ``version`` was claimed."""
        return self._versions.get(key, 0) == version

    def pending(self) -> list[str]:
        return list(self._pending)

    def clear(self) -> None:
        self._pending.clear()
        self._versions.clear()
