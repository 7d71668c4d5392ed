"""Common indexing data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from search_lifecycle.indexer.sources import partition_token
from search_lifecycle.utils.hashing import partition_hash

MAX_ERROR_SAMPLES = 5


@dataclass(slots=True)
class BatchStats:
    """Outcome of one batch import, after retries."""

    index: int
    docs_count: int
    success_count: int
    failure_count: int
    attempts: int
    http_status: int
    duration_ms: float
    bytes_sent: int
    error_samples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "docs_count": self.docs_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "attempts": self.attempts,
            "http_status": self.http_status,
            "duration_ms": round(self.duration_ms, 1),
            "bytes_sent": self.bytes_sent,
            "error_samples": list(self.error_samples[:MAX_ERROR_SAMPLES]),
        }


@dataclass(slots=True)
class ImportSummary:
    """Aggregated outcome of one partition import.

    ``status`` is derived: ``failed`` when a fatal error aborted the
    partition or when every imported document was rejected, ``partial`` when
    only some were, ``ok`` otherwise.
    """

    collection: str
    into: str
    partition: Any = None
    per_batch: list[BatchStats] = field(default_factory=list)
    duration_ms_total: float = 0.0
    error: str | None = None

    @property
    def docs_total(self) -> int:
        return sum(b.docs_count for b in self.per_batch)

    @property
    def success_total(self) -> int:
        return sum(b.success_count for b in self.per_batch)

    @property
    def failed_total(self) -> int:
        return sum(b.failure_count for b in self.per_batch)

    @property
    def batches_total(self) -> int:
        return len(self.per_batch)

    @property
    def status(self) -> str:
        if self.error is not None:
            return "failed"
        failed = self.failed_total
        if failed == 0:
            return "ok"
        if self.success_total == 0:
            return "failed"
        return "partial"

    def add(self, stats: BatchStats) -> None:
        self.per_batch.append(stats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "into": self.into,
            "partition": partition_token(self.partition),
            "partition_hash": partition_hash(partition_token(self.partition)),
            "status": self.status,
            "docs_total": self.docs_total,
            "success_total": self.success_total,
            "failed_total": self.failed_total,
            "batches_total": self.batches_total,
            "duration_ms_total": round(self.duration_ms_total, 1),
            "per_batch": [b.to_dict() for b in self.per_batch],
            "error": self.error,
        }


@dataclass(slots=True)
class DispatchHandle:
    """What ``ExecutionDispatcher.dispatch`` hands back.

    Inline runs carry the summary; queued runs carry the job id.
    """

    mode: str
    collection: str
    partition: Any = None
    summary: ImportSummary | None = None
    job_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "collection": self.collection,
            "partition": partition_token(self.partition),
            "job_id": self.job_id,
            "summary": self.summary.to_dict() if self.summary is not None else None,
        }


@dataclass(slots=True)
class CleanupResult:
    """Outcome of a stale-document cleanup for one partition."""

    collection: str
    status: str
    partition: Any = None
    reason: str | None = None
    filter: str | None = None
    filter_hash: str | None = None
    deleted_count: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "status": self.status,
            "partition": partition_token(self.partition),
            "reason": self.reason,
            "filter": self.filter,
            "filter_hash": self.filter_hash,
            "deleted_count": self.deleted_count,
            "duration_ms": round(self.duration_ms, 1),
        }


__all__ = ["BatchStats", "ImportSummary", "DispatchHandle", "CleanupResult", "MAX_ERROR_SAMPLES"]
