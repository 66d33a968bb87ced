# src/cache/evaluation.py — v1
"""Host-facing synchronous feedback evaluation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from titlerbridge.cache.feedback_cache import FeedbackCache
from titlerbridge.cache.staleness import StalenessTracker
from titlerbridge.core.models import FeedbackIdentity, FeedbackValue
from titlerbridge.imaging.image_set import IMAGE_REFERENCE_FIELD, ImageSet

logger = logging.getLogger(__name__)


class FeedbackEvaluator:
    """Answer "what does this feedback show right now" from the cache.

    Never waits on Titler. A miss returns None and queues the key for the
    rebuilder; a hit on a stale identity is returned as-is and also queued
    for a background refresh.
    """

    def __init__(
        self, cache: FeedbackCache, staleness: StalenessTracker, images: ImageSet
    ) -> None:
        self._cache = cache
        self._staleness = staleness
        self._images = images

    def evaluate(
        self, key: str, options: Mapping[str, Any] | None = None
    ) -> FeedbackValue | None:
        value = self._cache.lookup(key, options)
        if value is None:
            return None

        if IMAGE_REFERENCE_FIELD in value:
            value = self._images.resolve_reference(value)

        identity = FeedbackIdentity.parse(key)
        if identity is not None and self._staleness.is_stale(identity.key):
            logger.debug("Cache hit for stale %s, refreshing", key)
            self._cache.record_miss(key, options)

        return value
