# src/rpc/play_state.py — v1
"""Fold layer play states into a feedback state.

Titler may return running/paused variants of a field together with the key
of the layer whose play state selects between them, e.g.::

    {"overlayQueryKey": "lower-third",
     "overlayImageName_running": "glow.play",
     "overlayImageName_paused": "glow.pause"}

The variant matching the layer's current state replaces the base field.
Both variants and the query key are always removed, so with no known play
state neither variant is applied.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from titlerbridge.core.models import FeedbackValue, PlayState

UNKNOWN_PLAY_STATE: PlayState = "unknown"

# (field naming the layer, field the selected variant is written to)
CONDITIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("overlayQueryKey", "overlayImageName"),
    ("pngQueryKey", "png"),
)
VARIANTS: tuple[str, ...] = ("running", "paused")


def resolve_play_state(play_states: Mapping[str, Any], layer_key: Any) -> str:
    """Current play state of a layer, or ``"unknown"``."""
    record = play_states.get(layer_key) if isinstance(layer_key, str) else None
    if not isinstance(record, Mapping) or "playState" not in record:
        return UNKNOWN_PLAY_STATE
    return str(record["playState"])


def fold_play_states(
    value: FeedbackValue, play_states: Mapping[str, Any]
) -> FeedbackValue:
    """Collapse ``<field>_running`` / ``<field>_paused`` pairs in place."""
    for query_field, target_field in CONDITIONAL_FIELDS:
        if query_field not in value:
            continue
        state = resolve_play_state(play_states, value[query_field])
        for variant in VARIANTS:
            variant_field = f"{target_field}_{variant}"
            if variant_field not in value:
                continue
            selected = value.pop(variant_field)
            if state == variant:
                value[target_field] = selected
        del value[query_field]
    return value
