# src/connection/timers.py — v1
"""One-shot timer that owns its cancel handle."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Timer:
    """Run ``callback`` once, ``delay_s`` after ``start()``.

    ``start()`` is a no-op while armed; ``restart()`` pushes the deadline
    back, which turns the timer into a debouncer.
    """

    def __init__(self, delay_s: float, callback: Callable[[], None], name: str = "timer") -> None:
        self.delay_s = delay_s
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def start(self) -> bool:
        """Arm the timer. Returns False if it was already armed."""
        if self._handle is not None:
            return False
        self._handle = asyncio.get_running_loop().call_later(self.delay_s, self._fire)
        return True

    def restart(self) -> None:
        self.cancel()
        self.start()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.debug("Timer %s fired", self._name)
        self._callback()
