"""Named lifecycle events.

Each stage of a run reports a dotted event name (``schema.diff``,
``schema.alias_swapped``, ``indexer.batch_import``...) through the JSON
logger, with every payload key attached as a ``ctx_`` record attribute, and
counts it in Prometheus. Delivery beyond the log stream is left to whatever
consumes the logs.
"""

from __future__ import annotations

import logging
from typing import Any

from search_lifecycle.core.logging import context_extra, get_logger
from search_lifecycle.core.metrics import LIFECYCLE_EVENTS

logger = get_logger("search_lifecycle.events")

SCHEMA_DIFF = "schema.diff"
PHYSICAL_CREATED = "schema.physical_created"
PHYSICAL_DISCARDED = "schema.physical_discarded"
ALIAS_SWAPPED = "schema.alias_swapped"
RETENTION_PRUNED = "schema.retention_pruned"
ROLLBACK = "schema.rollback"
COLLECTION_DROPPED = "schema.dropped"
BATCH_IMPORT = "indexer.batch_import"
PARTITION_START = "indexer.partition_start"
PARTITION_FINISH = "indexer.partition_finish"
DISPATCH_ENQUEUED = "dispatcher.enqueued"
DISPATCH_INLINE = "dispatcher.inline_finished"
STALE_SKIPPED = "stale.skipped"
STALE_DELETED = "stale.deleted"
STALE_FAILED = "stale.failed"
CASCADE_OUTCOME = "cascade.outcome"
LIFECYCLE_STEP = "lifecycle.step"
LIFECYCLE_FAILED = "lifecycle.failed"


def emit(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Log ``event`` with ``fields`` and bump its counter."""
    logger.log(level, event, extra=context_extra(event=event, **fields))
    LIFECYCLE_EVENTS.labels(event=event).inc()


__all__ = [
    "emit",
    "SCHEMA_DIFF",
    "PHYSICAL_CREATED",
    "PHYSICAL_DISCARDED",
    "ALIAS_SWAPPED",
    "RETENTION_PRUNED",
    "ROLLBACK",
    "COLLECTION_DROPPED",
    "BATCH_IMPORT",
    "PARTITION_START",
    "PARTITION_FINISH",
    "DISPATCH_ENQUEUED",
    "DISPATCH_INLINE",
    "STALE_SKIPPED",
    "STALE_DELETED",
    "STALE_FAILED",
    "CASCADE_OUTCOME",
    "LIFECYCLE_STEP",
    "LIFECYCLE_FAILED",
]
