"""Choose between inline and queued partition execution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from search_lifecycle.core import events
from search_lifecycle.core.logging import get_logger
from search_lifecycle.indexer.indexer import PartitionIndexer
from search_lifecycle.indexer.jobs import JobQueue
from search_lifecycle.indexer.sources import partition_token
from search_lifecycle.indexer.types import DispatchHandle

if TYPE_CHECKING:
    from search_lifecycle.models.definitions import CollectionDefinition

logger = get_logger(__name__)

MODES = ("sync", "async")


class ExecutionDispatcher:
    """Run a partition inline or hand it to a job queue.

    ``async`` without a configured queue degrades to ``sync`` with a
    warning rather than failing the run.
    """

    def __init__(self, indexer: PartitionIndexer, queue: JobQueue | None = None) -> None:
        self.indexer = indexer
        self.queue = queue

    def dispatch(
        self,
        definition: "CollectionDefinition",
        partition: Any = None,
        mode: str = "sync",
        metadata: Mapping[str, Any] | None = None,
        into: str | None = None,
    ) -> DispatchHandle:
        if mode not in MODES:
            raise ValueError(f"dispatch mode must be one of {MODES}; got {mode!r}")
        logical = definition.logical_name
        meta = dict(metadata or {})

        if mode == "async":
            if self.queue is not None:
                job_id = self.queue.enqueue(
                    logical,
                    partition,
                    into,
                    meta,
                    lambda: self.indexer.rebuild_partition(definition, partition=partition, into=into),
                )
                events.emit(
                    events.DISPATCH_ENQUEUED,
                    collection=logical,
                    partition=partition_token(partition),
                    job_id=job_id,
                    into=into,
                )
                return DispatchHandle(mode="async", collection=logical, partition=partition, job_id=job_id)
            logger.warning("No job queue configured for %s; running partition inline", logical)

        summary = self.indexer.rebuild_partition(definition, partition=partition, into=into)
        events.emit(
            events.DISPATCH_INLINE,
            level=logging.WARNING if summary.status == "failed" else logging.INFO,
            collection=logical,
            partition=partition_token(partition),
            status=summary.status,
            into=summary.into,
            **{f"meta_{key}": value for key, value in meta.items()},
        )
        return DispatchHandle(mode="sync", collection=logical, partition=partition, summary=summary)


__all__ = ["ExecutionDispatcher", "MODES"]
