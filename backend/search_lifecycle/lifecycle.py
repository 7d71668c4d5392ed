"""Top-level orchestration of a collection's lifecycle.

``indexate`` decides between creating, migrating or refreshing a collection
from the live schema state, runs every partition, then deletes stale
documents and cascades to dependents when all partitions succeeded.
Partial runs refresh selected partitions of an already in-sync collection.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Sequence

from search_lifecycle.cascade import CascadeGraph, CascadeReport
from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import (
    ConfirmationRequired,
    LifecycleError,
    PopulationFailed,
    SchemaMissingOrDrifted,
    ValidationError,
    truncate_message,
)
from search_lifecycle.core.logging import get_logger
from search_lifecycle.db.sqlite import SQLiteDatabase
from search_lifecycle.indexer.dispatcher import ExecutionDispatcher
from search_lifecycle.indexer.indexer import PartitionIndexer
from search_lifecycle.indexer.jobs import JobQueue
from search_lifecycle.indexer.partitioner import Partitioner
from search_lifecycle.indexer.sources import KeyPartition
from search_lifecycle.indexer.stale import StaleCleaner, StaleFilter
from search_lifecycle.indexer.types import CleanupResult, DispatchHandle, ImportSummary
from search_lifecycle.models.definitions import CollectionDefinition
from search_lifecycle.registry import CollectionRegistry
from search_lifecycle.reporting import dumps, partition_progress_line
from search_lifecycle.schema.diff import DRIFT, IN_SYNC, MISSING, SchemaDiff
from search_lifecycle.schema.manager import ApplyResult, RollbackResult, SchemaManager
from search_lifecycle.utils.ids import new_id
from search_lifecycle.utils.time import now_ms

logger = get_logger(__name__)

ABSENT = "absent"
PRESENT_IN_SYNC = "present_in_sync"
PRESENT_DRIFT = "present_drift"

_STATES = {MISSING: ABSENT, IN_SYNC: PRESENT_IN_SYNC, DRIFT: PRESENT_DRIFT}


@dataclass(slots=True)
class CollectionStatus:
    collection: str
    state: str
    diff: SchemaDiff
    alias_target: str | None
    generations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "state": self.state,
            "diff": self.diff.to_dict(),
            "alias_target": self.alias_target,
            "generations": list(self.generations),
        }


@dataclass(slots=True)
class RunReport:
    collection: str
    mode: str
    state: str
    apply: ApplyResult | None = None
    partitions: list[ImportSummary] = field(default_factory=list)
    cleanup: list[CleanupResult] = field(default_factory=list)
    cascade: CascadeReport | None = None
    handles: list[DispatchHandle] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.handles and not self.partitions:
            return "enqueued"
        statuses = {summary.status for summary in self.partitions}
        if "failed" in statuses:
            return "failed"
        if "partial" in statuses:
            return "partial"
        return "ok"

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "mode": self.mode,
            "state": self.state,
            "status": self.status,
            "apply": self.apply.to_dict() if self.apply else None,
            "partitions": [summary.to_dict() for summary in self.partitions],
            "cleanup": [result.to_dict() for result in self.cleanup],
            "cascade": self.cascade.to_dict() if self.cascade else None,
            "handles": [handle.to_dict() for handle in self.handles],
            "pruned": list(self.pruned),
        }


class LifecycleOrchestrator:
    """Coordinate schema, indexing, stale cleanup and cascades for registered collections."""

    def __init__(
        self,
        registry: CollectionRegistry,
        client: SearchClient,
        settings: Settings,
        queue: JobQueue | None = None,
        database: SQLiteDatabase | None = None,
    ) -> None:
        self.registry = registry
        self.client = client
        self.settings = settings
        self.database = database
        self.schema = SchemaManager(client, settings)
        self.indexer = PartitionIndexer(client, settings)
        self.dispatcher = ExecutionDispatcher(self.indexer, queue)
        self.cleaner = StaleCleaner(client, settings)

    # Read-only views --------------------------------------------------

    def status(self, name: str) -> CollectionStatus:
        definition = self.registry.require(name)
        return self._status(definition)

    def _status(self, definition: CollectionDefinition) -> CollectionStatus:
        schema_diff = self.schema.diff_live(definition)
        return CollectionStatus(
            collection=definition.logical_name,
            state=_STATES[schema_diff.status],
            diff=schema_diff,
            alias_target=self.client.resolve_alias(definition.logical_name),
            generations=self.schema.generations(definition.logical_name),
        )

    # Indexation -------------------------------------------------------

    def indexate(self, name: str, partitions: Sequence[Any] | None = None) -> RunReport:
        definition = self.registry.require(name)
        with _Stage(name) as stage:
            stage.name = "status"
            status = self._status(definition)
            if partitions is None:
                report = self._full_run(definition, status, stage)
            else:
                report = self._partial_run(definition, status, list(partitions), stage)
            self._store_run(report)
            return report

    def reindexate(self, name: str, confirm: bool = False) -> RunReport:
        """Drop the live generation and rebuild from scratch."""
        if not confirm:
            raise ConfirmationRequired(f"reindexate of {name!r} drops the live collection; pass confirm=True")
        definition = self.registry.require(name)
        with _Stage(name, "drop"):
            self.schema.drop(definition)
        return self.indexate(name)

    def _full_run(self, definition: CollectionDefinition, status: CollectionStatus, stage: "_Stage") -> RunReport:
        logical = definition.logical_name
        compiled = Partitioner.compile(definition.partitioning)
        report = RunReport(collection=logical, mode="full", state=status.state)
        max_parallel = compiled.max_parallel or self.settings.max_parallel

        if status.state in (ABSENT, PRESENT_DRIFT):
            stage.name = "apply"

            def populate(physical: str) -> None:
                summaries = self._run_partitions(definition, compiled.partitions, physical, max_parallel)
                report.partitions.extend(summaries)
                failed = [summary.partition for summary in summaries if summary.status == "failed"]
                if failed:
                    raise PopulationFailed(physical, failed)

            report.apply = self.schema.apply(definition, populate)
            into = report.apply.new_physical or logical
        else:
            stage.name = "index"
            if self._index_live(definition, compiled.partitions, max_parallel, report):
                return report
            into = logical
            stage.name = "retention"
            report.pruned = self.schema.prune(definition)

        if report.status == "ok":
            stage.name = "cleanup"
            report.cleanup = self._cleanup_run(definition, compiled.partitions, into)
            stage.name = "cascade"
            report.cascade = self.cascade(logical)
        return report

    def _partial_run(
        self,
        definition: CollectionDefinition,
        status: CollectionStatus,
        partitions: list[Any],
        stage: "_Stage",
    ) -> RunReport:
        logical = definition.logical_name
        if status.state != PRESENT_IN_SYNC:
            raise SchemaMissingOrDrifted(logical, status.state)
        report = RunReport(collection=logical, mode="partial", state=status.state)
        stage.name = "index"
        compiled = Partitioner.compile(definition.partitioning)
        max_parallel = compiled.max_parallel or self.settings.max_parallel
        if self._index_live(definition, partitions, max_parallel, report):
            return report
        if report.status == "ok":
            stage.name = "cascade"
            report.cascade = self.cascade(logical)
        return report

    def _index_live(
        self,
        definition: CollectionDefinition,
        partitions: Sequence[Any],
        max_parallel: int,
        report: RunReport,
    ) -> bool:
        """Index into the alias; ``True`` when the work was handed to the job queue."""
        logical = definition.logical_name
        if self.settings.dispatch_mode == "async":
            handles = [
                self.dispatcher.dispatch(
                    definition, partition, mode="async", metadata={"run": report.mode}, into=logical
                )
                for partition in partitions
            ]
            if all(handle.job_id for handle in handles):
                report.handles.extend(handles)
                return True
            report.partitions.extend(handle.summary for handle in handles if handle.summary is not None)
            return False
        report.partitions.extend(self._run_partitions(definition, partitions, logical, max_parallel))
        return False

    def _run_partitions(
        self,
        definition: CollectionDefinition,
        partitions: Sequence[Any],
        into: str,
        max_parallel: int,
    ) -> list[ImportSummary]:
        """Run partitions inline, at most ``max_parallel`` at a time, results in declaration order."""
        workers = max(1, min(max_parallel, len(partitions)))
        if workers == 1:
            handles = [self._dispatch_sync(definition, partition, into) for partition in partitions]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="slc-partition") as pool:
                futures = [
                    pool.submit(self._dispatch_sync, definition, partition, into) for partition in partitions
                ]
                handles = [future.result() for future in futures]
        return [handle.summary for handle in handles if handle.summary is not None]

    def _dispatch_sync(self, definition: CollectionDefinition, partition: Any, into: str) -> DispatchHandle:
        handle = self.dispatcher.dispatch(definition, partition, mode="sync", into=into)
        if handle.summary is not None:
            logger.info("%s %s", definition.logical_name, partition_progress_line(handle.summary))
        return handle

    # Cleanup ----------------------------------------------------------

    def cleanup(self, name: str, partition: Any = None, dry_run: bool | None = None) -> CleanupResult:
        definition = self.registry.require(name)
        with _Stage(name, "cleanup"):
            return self.cleaner.run(definition, partition=partition, into=name, dry_run=dry_run)

    def _cleanup_run(
        self, definition: CollectionDefinition, partitions: Sequence[Any], into: str
    ) -> list[CleanupResult]:
        """One deletion per distinct compiled filter across the run's partitions."""
        results: list[CleanupResult] = []
        seen: set[str | None] = set()
        for partition in partitions:
            try:
                deletion = StaleFilter.compile(definition, partition)
            except ValidationError:
                deletion = None
            key = deletion.filter_hash if deletion is not None else None
            if key in seen:
                continue
            seen.add(key)
            results.append(self.cleaner.run(definition, partition=partition, into=into))
        return results

    # Schema operations ------------------------------------------------

    def rollback(self, name: str) -> RollbackResult:
        definition = self.registry.require(name)
        with _Stage(name, "rollback"):
            return self.schema.rollback(definition)

    def drop(self, name: str) -> str | None:
        definition = self.registry.require(name)
        with _Stage(name, "drop"):
            return self.schema.drop(definition)

    # Cascade ----------------------------------------------------------

    def cascade(self, name: str, ids: Sequence[Any] | None = None, context: str = "full") -> CascadeReport:
        graph = CascadeGraph.build(self.registry, self._cascade_partial, self._cascade_full)
        return graph.reindex_dependents(name, ids=ids, context=context)

    def _cascade_partial(self, definition: CollectionDefinition, partition: KeyPartition) -> ImportSummary:
        return self.indexer.rebuild_partition(definition, partition=partition, into=definition.logical_name)

    def _cascade_full(self, definition: CollectionDefinition) -> list[ImportSummary]:
        compiled = Partitioner.compile(definition.partitioning)
        max_parallel = compiled.max_parallel or self.settings.max_parallel
        summaries = self._run_partitions(definition, compiled.partitions, definition.logical_name, max_parallel)
        failed = [summary.partition for summary in summaries if summary.status == "failed"]
        if failed:
            raise LifecycleError(f"reindex of {definition.logical_name!r} failed for partitions {failed!r}")
        return summaries

    # Persistence ------------------------------------------------------

    def _store_run(self, report: RunReport) -> None:
        if self.database is None:
            return
        self.database.execute(
            "INSERT INTO lifecycle_runs (id, collection, mode, status, report_json, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            [new_id("run"), report.collection, report.mode, report.status, dumps(report), now_ms()],
        )
        self.database.commit()


class _Stage:
    """Context manager emitting ``lifecycle.failed`` for errors escaping a stage."""

    def __init__(self, collection: str, name: str = "start") -> None:
        self.collection = collection
        self.name = name

    def __enter__(self) -> "_Stage":
        events.emit(events.LIFECYCLE_STEP, collection=self.collection, stage=self.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is None:
            return
        events.emit(
            events.LIFECYCLE_FAILED,
            level=logging.ERROR,
            collection=self.collection,
            stage=self.name,
            error_class=exc_type.__name__,
            message=truncate_message(exc),
        )


__all__ = [
    "LifecycleOrchestrator",
    "CollectionStatus",
    "RunReport",
    "ABSENT",
    "PRESENT_IN_SYNC",
    "PRESENT_DRIFT",
]
