"""Rendering helpers for run reports."""

from __future__ import annotations

from typing import Any

import orjson

from search_lifecycle.indexer.sources import partition_token
from search_lifecycle.indexer.types import ImportSummary


def dumps(payload: Any) -> str:
    """Serialise a report (or anything with ``to_dict``) to JSON text."""
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    return orjson.dumps(payload, default=repr, option=orjson.OPT_SORT_KEYS).decode("utf-8")


def sample_error(summary: ImportSummary) -> str | None:
    if summary.error:
        return summary.error
    for stats in summary.per_batch:
        if stats.error_samples:
            return stats.error_samples[0]
    return None


def partition_progress_line(summary: ImportSummary) -> str:
    """Compact one-line rendering of a finished partition."""
    token = orjson.dumps(partition_token(summary.partition), default=repr).decode("utf-8")
    parts = [
        f"partition={token}",
        f"status={summary.status}",
        f"docs={summary.docs_total}",
        f"failed={summary.failed_total}",
        f"batches={summary.batches_total}",
        f"duration_ms={round(summary.duration_ms_total, 1)}",
    ]
    error = sample_error(summary)
    if error:
        parts.append(f"sample_error={error!r}")
    return " ".join(parts)


__all__ = ["dumps", "sample_error", "partition_progress_line"]
