"""Text processing helpers."""

from __future__ import annotations


def truncate(text: str, limit: int = 200) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    return text if len(text) <= limit else text[:limit]
