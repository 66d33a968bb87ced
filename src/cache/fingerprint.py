# src/cache/fingerprint.py — v3
"""Feedback fingerprinting: identity key + option set -> cache key.

The option set is serialized canonically (sorted keys at every level, compact
separators) before hashing, so two option dicts holding the same pairs always
produce the same fingerprint regardless of insertion order.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

FINGERPRINT_SEPARATOR = "+"


def make_fingerprint(key: str, options: Mapping[str, Any] | None = None) -> str:
    """Compute the cache key for a feedback key and its options.

    Args:
        key: Bare identity key (``actor~feedback``) or any other cache key.
        options: Feedback options. Empty or None leaves the key unchanged.

    Returns:
        ``key`` when there are no options, else ``key+<md5 of options>``.
    """
    if not options:
        return key
    return f"{key}{FINGERPRINT_SEPARATOR}{options_digest(options)}"


def options_digest(options: Mapping[str, Any]) -> str:
    """MD5 hex digest of the canonical JSON form of an option set."""
    canonical = canonical_json(options)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()  # noqa: S324


def canonical_json(value: Any) -> str:
    """Order-independent JSON serialization used as hash input."""
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
