"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

LIFECYCLE_EVENTS = Counter(
    "slc_lifecycle_events_total",
    "Named lifecycle events emitted",
    labelnames=("event",),
    registry=REGISTRY,
)

BATCH_IMPORTS = Counter(
    "slc_batch_imports_total",
    "Batch import calls by outcome",
    labelnames=("collection", "outcome"),
    registry=REGISTRY,
)

DOCUMENTS_IMPORTED = Counter(
    "slc_documents_imported_total",
    "Documents reported by import responses",
    labelnames=("collection", "result"),
    registry=REGISTRY,
)

IMPORT_RETRIES = Counter(
    "slc_import_retries_total",
    "Batch import attempts retried after a transient failure",
    labelnames=("collection",),
    registry=REGISTRY,
)

PARTITION_DURATION = Histogram(
    "slc_partition_duration_seconds",
    "Duration of a single partition import",
    labelnames=("collection", "status"),
    registry=REGISTRY,
)

STALE_DELETED = Counter(
    "slc_stale_documents_deleted_total",
    "Documents removed by stale deletion",
    labelnames=("collection",),
    registry=REGISTRY,
)

ALIAS_SWAPS = Counter(
    "slc_alias_swaps_total",
    "Alias repoints performed by apply or rollback",
    labelnames=("collection", "operation"),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "LIFECYCLE_EVENTS",
    "BATCH_IMPORTS",
    "DOCUMENTS_IMPORTED",
    "IMPORT_RETRIES",
    "PARTITION_DURATION",
    "STALE_DELETED",
    "ALIAS_SWAPS",
    "metrics_response",
]
