"""Hashing utilities."""

from __future__ import annotations

import hashlib
from typing import Any

import orjson


def sha1_text(text: str) -> str:
    """Return hex SHA1 digest of a string."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def partition_hash(partition: Any) -> str | None:
    """Stable short digest of a partition token, ``None`` for the implicit partition."""
    if partition is None:
        return None
    encoded = orjson.dumps(partition, default=repr, option=orjson.OPT_SORT_KEYS)
    return hashlib.sha1(encoded).hexdigest()[:12]
