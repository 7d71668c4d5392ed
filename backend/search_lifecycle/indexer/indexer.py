"""Rebuild a single partition end to end."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import PayloadTooLargeError, ValidationError, error_excerpt
from search_lifecycle.core.logging import get_logger
from search_lifecycle.core.metrics import PARTITION_DURATION
from search_lifecycle.indexer.batches import BatchPlanner
from search_lifecycle.indexer.importer import ImportDispatcher
from search_lifecycle.indexer.retry import RetryPolicy
from search_lifecycle.indexer.sources import KeyFilterSource, KeyPartition, partition_token
from search_lifecycle.indexer.types import BatchStats, ImportSummary
from search_lifecycle.utils.hashing import partition_hash
from search_lifecycle.utils.time import monotonic_ms

if TYPE_CHECKING:
    from search_lifecycle.models.definitions import CollectionDefinition

logger = get_logger(__name__)


class PartitionIndexer:
    """Fetch, encode and import every batch of one partition.

    Batches run sequentially and are reported in submission order. A batch
    rejected with HTTP 413 is split in halves and retried; a single document
    that is still too large aborts the partition. Any fatal error stops the
    partition and is recorded on the returned summary instead of raised.
    """

    def __init__(
        self,
        client: SearchClient,
        settings: Settings,
        retry_policy: RetryPolicy | None = None,
        importer: ImportDispatcher | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.importer = importer or ImportDispatcher()

    def rebuild_partition(
        self,
        definition: "CollectionDefinition",
        partition: Any = None,
        into: str | None = None,
        dry_run: bool | None = None,
    ) -> ImportSummary:
        logical = definition.logical_name
        target = into or logical
        dry = self.settings.dry_run if dry_run is None else dry_run
        summary = ImportSummary(collection=logical, into=target, partition=partition)
        spec = definition.partitioning
        planner = BatchPlanner(id_field=definition.id_field)
        started = monotonic_ms()
        events.emit(
            events.PARTITION_START,
            collection=logical,
            into=target,
            partition=partition_token(partition),
            partition_hash=partition_hash(partition_token(partition)),
        )

        try:
            if spec and spec.before_partition and partition is not None and self._logical_present(logical):
                spec.before_partition(partition)
            index = 0
            for chunk in self._chunks(definition, partition):
                for stats in self._import_with_split(definition, planner, target, chunk, index, dry):
                    summary.add(stats)
                    index = stats.index + 1
            if spec and spec.after_partition:
                spec.after_partition(partition)
        except Exception as exc:
            logger.exception("Partition %r of %s failed", partition_token(partition), logical)
            summary.error = error_excerpt(exc)

        summary.duration_ms_total = monotonic_ms() - started
        PARTITION_DURATION.labels(collection=logical, status=summary.status).observe(
            summary.duration_ms_total / 1000.0
        )
        events.emit(
            events.PARTITION_FINISH,
            level=logging.WARNING if summary.status == "failed" else logging.INFO,
            collection=logical,
            into=target,
            partition=partition_token(partition),
            status=summary.status,
            docs_total=summary.docs_total,
            success_total=summary.success_total,
            failed_total=summary.failed_total,
            batches_total=summary.batches_total,
            duration_ms=round(summary.duration_ms_total, 1),
            error=summary.error,
        )
        return summary

    # Internal helpers -------------------------------------------------

    def _batches(self, definition: "CollectionDefinition", partition: Any):
        source = definition.source
        if isinstance(partition, KeyPartition):
            if not isinstance(source, KeyFilterSource):
                raise ValidationError(f"source of {definition.logical_name!r} cannot filter by key")
            return source.batches_for_keys(partition.field, partition.ids)
        return source.batches(partition)

    def _chunks(self, definition: "CollectionDefinition", partition: Any):
        """Source batches re-cut to at most ``settings.batch_size`` documents."""
        size = self.settings.batch_size
        for batch in self._batches(definition, partition):
            documents = list(batch)
            for start in range(0, len(documents), size):
                yield documents[start : start + size]

    def _import_with_split(
        self,
        definition: "CollectionDefinition",
        planner: BatchPlanner,
        target: str,
        documents: Sequence[Mapping[str, Any]],
        index: int,
        dry_run: bool,
    ) -> list[BatchStats]:
        encoded = planner.encode(documents)
        if encoded.docs_count == 0:
            return []
        try:
            stats = self.importer.import_batch(
                self.client,
                target,
                definition.action,
                encoded,
                index,
                self.retry_policy,
                dry_run=dry_run,
            )
            return [stats]
        except PayloadTooLargeError:
            if len(documents) < 2:
                raise
            mid = len(documents) // 2
            logger.info(
                "Batch %s into %s too large (%s docs); splitting", index, target, len(documents)
            )
            left = self._import_with_split(definition, planner, target, documents[:mid], index, dry_run)
            next_index = left[-1].index + 1 if left else index
            right = self._import_with_split(definition, planner, target, documents[mid:], next_index, dry_run)
            return left + right

    def _logical_present(self, logical: str) -> bool:
        if self.client.resolve_alias(logical):
            return True
        return self.client.retrieve_schema(logical) is not None


__all__ = ["PartitionIndexer"]
