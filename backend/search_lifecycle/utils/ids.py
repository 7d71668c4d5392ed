"""Identifiers for job and run records."""

from __future__ import annotations

import secrets

from search_lifecycle.utils.time import now_ms


def new_id(kind: str) -> str:
    """``<kind>_<ms timestamp hex><random hex>``; ids of one kind sort by creation time."""
    if not kind or "_" in kind:
        raise ValueError(f"id kind must be a non-empty word without underscores; got {kind!r}")
    return f"{kind}_{now_ms():012x}{secrets.token_hex(6)}"


def id_kind(value: str) -> str | None:
    kind, sep, rest = value.partition("_")
    return kind if sep and rest else None
