# src/imaging/image_set.py — v1
"""Named base64 images fetched from Titler once per connection."""

from __future__ import annotations

from collections.abc import Mapping

from titlerbridge.core.models import FeedbackValue

IMAGE_REFERENCE_FIELD = "imageName"
PAYLOAD_FIELD = "png64"


class ImageSet:
    """name -> base64 raster payload, valid for one connection."""

    def __init__(self, images: Mapping[str, str] | None = None) -> None:
        self._images: dict[str, str] = dict(images or {})

    def replace(self, images: Mapping[str, str] | None) -> None:
        """Swap in the set fetched on a fresh connection."""
        self._images = {
            str(name): payload
            for name, payload in (images or {}).items()
            if isinstance(payload, str)
        }

    def get(self, name: object) -> str | None:
        if name is None:
            return None
        return self._images.get(str(name))

    def clear(self) -> None:
        self._images.clear()

    def resolve_reference(self, value: FeedbackValue) -> FeedbackValue:
        """Return a copy with ``imageName`` replaced by its ``png64`` payload.

        The reference is always stripped; ``png64`` is only set when the
        name is known.
        """
        resolved = dict(value)
        name = resolved.pop(IMAGE_REFERENCE_FIELD, None)
        payload = self.get(name)
        if payload is not None:
            resolved[PAYLOAD_FIELD] = payload
        return resolved

    def __len__(self) -> int:
        return len(self._images)

    def __contains__(self, name: object) -> bool:
        return name in self._images
