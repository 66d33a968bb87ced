# tests/unit/core/test_models.py — v2
"""Tests for core/models.py and core/errors.py.

Also covers version.py import validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from titlerbridge.core.errors import (
    BridgeError,
    ConnectionEpochExpired,
    MalformedResponse,
    NotConnectedError,
    RpcParseError,
    TransportError,
    UnsupportedKind,
)
from titlerbridge.core.models import ConnectionState, FeedbackIdentity, MissEntry


class TestFeedbackIdentity:
    def test_parse(self):
        identity = FeedbackIdentity.parse("actor1~fb1")
        assert identity == FeedbackIdentity(actor_id="actor1", feedback_id="fb1")
        assert identity.key == "actor1~fb1"

    def test_parse_uses_first_two_components(self):
        identity = FeedbackIdentity.parse("actor1~fb1~extra")
        assert identity.actor_id == "actor1"
        assert identity.feedback_id == "fb1"
        assert identity.key == "actor1~fb1"

    @pytest.mark.parametrize("key", ["", "actor1", "no separator here"])
    def test_parse_rejects_single_component(self, key):
        assert FeedbackIdentity.parse(key) is None

    def test_frozen_and_hashable(self):
        identity = FeedbackIdentity(actor_id="a", feedback_id="b")
        with pytest.raises(ValidationError):
            identity.actor_id = "c"
        assert {identity: 1}[FeedbackIdentity(actor_id="a", feedback_id="b")] == 1


class TestMissEntry:
    def test_default_options(self):
        assert MissEntry(key="a~b").options == {}

    def test_equality(self):
        assert MissEntry(key="a~b", options={"x": 1}) == MissEntry(key="a~b", options={"x": 1})


class TestConnectionState:
    def test_values(self):
        assert {s.value for s in ConnectionState} == {"disconnected", "connecting", "connected"}


class TestErrors:
    def test_hierarchy(self):
        assert issubclass(NotConnectedError, TransportError)
        assert issubclass(ConnectionEpochExpired, TransportError)
        assert issubclass(MalformedResponse, RpcParseError)
        for exc in (TransportError, RpcParseError, UnsupportedKind):
            assert issubclass(exc, BridgeError)

    def test_messages(self):
        assert "7" in str(ConnectionEpochExpired(7))
        assert "variables" in str(UnsupportedKind("variables"))
        err = MalformedResponse("_cmp_v1_queryFeedbackState", "not json")
        assert err.method == "_cmp_v1_queryFeedbackState"
        assert "not json" in str(err)


class TestVersion:
    def test_version_importable(self):
        from titlerbridge.version import __version__

        assert __version__ == "2.0.0"

    def test_package_exports_version(self):
        import titlerbridge

        assert titlerbridge.__version__ == "2.0.0"
