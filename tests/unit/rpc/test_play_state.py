# tests/unit/rpc/test_play_state.py — v1
"""Tests for rpc/play_state.py — folding layer play states."""

from __future__ import annotations

from titlerbridge.rpc.play_state import (
    UNKNOWN_PLAY_STATE,
    fold_play_states,
    resolve_play_state,
)


class TestResolvePlayState:
    def test_known_layer(self):
        assert resolve_play_state({"L": {"playState": "running"}}, "L") == "running"

    def test_unknown_layer(self):
        assert resolve_play_state({}, "L") == UNKNOWN_PLAY_STATE

    def test_record_without_play_state(self):
        assert resolve_play_state({"L": {"other": 1}}, "L") == UNKNOWN_PLAY_STATE

    def test_non_string_layer_key(self):
        assert resolve_play_state({"L": {"playState": "paused"}}, 5) == UNKNOWN_PLAY_STATE


class TestFoldPlayStates:
    def test_running_variant_selected(self):
        value = {
            "overlayQueryKey": "L",
            "overlayImageName_running": "P",
            "overlayImageName_paused": "Q",
        }
        folded = fold_play_states(value, {"L": {"playState": "running"}})
        assert folded == {"overlayImageName": "P"}

    def test_paused_variant_selected(self):
        value = {
            "overlayQueryKey": "L",
            "overlayImageName_running": "P",
            "overlayImageName_paused": "Q",
        }
        folded = fold_play_states(value, {"L": {"playState": "paused"}})
        assert folded == {"overlayImageName": "Q"}

    def test_unknown_state_strips_variants(self):
        value = {
            "overlayQueryKey": "L",
            "overlayImageName": "base",
            "overlayImageName_running": "P",
            "overlayImageName_paused": "Q",
        }
        assert fold_play_states(value, {}) == {"overlayImageName": "base"}

    def test_other_state_strips_variants(self):
        value = {"overlayQueryKey": "L", "overlayImageName_running": "P"}
        assert fold_play_states(value, {"L": {"playState": "stopped"}}) == {}

    def test_png_pair(self):
        value = {
            "pngQueryKey": "M",
            "png_running": "run.png",
            "png_paused": "pause.png",
            "text": "x",
        }
        folded = fold_play_states(value, {"M": {"playState": "paused"}})
        assert folded == {"png": "pause.png", "text": "x"}

    def test_both_pairs_use_their_own_layer(self):
        value = {
            "overlayQueryKey": "L",
            "overlayImageName_running": "P",
            "pngQueryKey": "M",
            "png_running": "run.png",
        }
        play_states = {"L": {"playState": "running"}, "M": {"playState": "paused"}}
        assert fold_play_states(value, play_states) == {"overlayImageName": "P"}

    def test_without_query_key_untouched(self):
        value = {"overlayImageName_running": "P", "text": "x"}
        assert fold_play_states(dict(value), {"L": {"playState": "running"}}) == value

    def test_folds_in_place(self):
        value = {"overlayQueryKey": "L", "overlayImageName_running": "P"}
        result = fold_play_states(value, {"L": {"playState": "running"}})
        assert result is value
