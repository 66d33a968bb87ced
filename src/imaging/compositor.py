# src/imaging/compositor.py — v1
"""Merge a named overlay image onto a feedback's base image.

Compositing is an enhancement: when anything in the decode/blend/encode
pipeline fails, the state keeps its original base payload.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging

from PIL import Image

from titlerbridge.core.errors import CompositingError
from titlerbridge.core.models import FeedbackValue
from titlerbridge.imaging.image_set import (
    IMAGE_REFERENCE_FIELD,
    PAYLOAD_FIELD,
    ImageSet,
)

logger = logging.getLogger(__name__)

OVERLAY_REFERENCE_FIELD = "overlayImageName"

_DATA_URI_MARKER = ";base64,"


def split_payload(payload: str) -> tuple[str, bytes]:
    """Split a payload into its optional ``data:...;base64,`` prefix and bytes.

    Raises:
        CompositingError: If the payload is not valid base64.
    """
    prefix = ""
    if payload.startswith("data:") and _DATA_URI_MARKER in payload:
        head, _, payload = payload.partition(_DATA_URI_MARKER)
        prefix = f"{head}{_DATA_URI_MARKER}"
    try:
        return prefix, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CompositingError(f"Payload is not valid base64: {exc}") from exc


def composite_images(base_payload: str, overlay_payload: str) -> str:
    """Alpha-composite ``overlay`` over ``base`` ("over" blend, tiled).

    Args:
        base_payload: Base64 raster, optionally with a data-URI prefix.
        overlay_payload: Base64 raster tiled across the base when smaller.

    Returns:
        Base64 PNG of the composite, carrying the base payload's prefix.

    Raises:
        CompositingError: If either image cannot be decoded or the result
            cannot be encoded.
    """
    prefix, base_bytes = split_payload(base_payload)
    _, overlay_bytes = split_payload(overlay_payload)

    try:
        with Image.open(io.BytesIO(base_bytes)) as base_src, Image.open(
            io.BytesIO(overlay_bytes)
        ) as overlay_src:
            base = base_src.convert("RGBA")
            overlay = overlay_src.convert("RGBA")

        layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
        for top in range(0, base.height, max(overlay.height, 1)):
            for left in range(0, base.width, max(overlay.width, 1)):
                layer.paste(overlay, (left, top))

        buffer = io.BytesIO()
        Image.alpha_composite(base, layer).save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise CompositingError(f"Could not composite images: {exc}") from exc

    return prefix + base64.b64encode(buffer.getvalue()).decode("ascii")


async def render_state(state: FeedbackValue, images: ImageSet) -> FeedbackValue:
    """Resolve image references in a freshly queried feedback state.

    An ``overlayImageName`` known to the image set is composited over
    ``png64`` (or becomes ``png64`` when the state has no base image). A
    bare ``imageName`` is replaced by its payload. Reference fields are
    stripped from the returned copy.
    """
    if OVERLAY_REFERENCE_FIELD not in state:
        if IMAGE_REFERENCE_FIELD in state:
            return images.resolve_reference(state)
        return state

    rendered = dict(state)
    overlay_name = rendered.pop(OVERLAY_REFERENCE_FIELD)
    overlay = images.get(overlay_name)
    if overlay is None:
        logger.debug("Overlay image %r not in image set", overlay_name)
        return rendered

    base = rendered.get(PAYLOAD_FIELD)
    if not isinstance(base, str):
        rendered[PAYLOAD_FIELD] = overlay
        return rendered

    try:
        rendered[PAYLOAD_FIELD] = await asyncio.to_thread(composite_images, base, overlay)
    except CompositingError as exc:
        logger.warning("Overlay %r not applied: %s", overlay_name, exc)
    return rendered
