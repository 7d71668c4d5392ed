"""Single batch import with local retries."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Mapping

import orjson

from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.errors import ApiError, TransportError, error_excerpt
from search_lifecycle.core.logging import get_logger
from search_lifecycle.core.metrics import BATCH_IMPORTS, DOCUMENTS_IMPORTED, IMPORT_RETRIES
from search_lifecycle.indexer.batches import EncodedBatch
from search_lifecycle.indexer.retry import RetryPolicy
from search_lifecycle.indexer.types import MAX_ERROR_SAMPLES, BatchStats
from search_lifecycle.utils.text import truncate
from search_lifecycle.utils.time import monotonic_ms

logger = get_logger(__name__)

INVALID_LINE = "invalid-json-line"
SAMPLE_LIMIT = 200


class ImportDispatcher:
    """Send one encoded batch to the import endpoint.

    Transient transport failures are retried according to ``retry_policy``
    with the backoff sleep taken on the calling thread. Anything the policy
    refuses, including ``PayloadTooLargeError``, propagates to the caller.
    """

    def __init__(self, sleep: Callable[[float], None] = time.sleep) -> None:
        self._sleep = sleep

    def import_batch(
        self,
        client: SearchClient,
        collection: str,
        action: str,
        batch: EncodedBatch,
        index: int,
        retry_policy: RetryPolicy,
        dry_run: bool = False,
    ) -> BatchStats:
        if dry_run:
            stats = BatchStats(
                index=index,
                docs_count=batch.docs_count,
                success_count=batch.docs_count,
                failure_count=0,
                attempts=1,
                http_status=200,
                duration_ms=0.0,
                bytes_sent=batch.byte_size,
            )
            self._record(collection, stats, outcome="dry_run")
            return stats

        attempt = 1
        while True:
            started = monotonic_ms()
            try:
                raw = client.import_documents(collection, batch.payload, action)
            except TransportError as exc:
                if not retry_policy.retryable(attempt, exc):
                    BATCH_IMPORTS.labels(collection=collection, outcome="error").inc()
                    events.emit(
                        events.BATCH_IMPORT,
                        level=logging.WARNING,
                        collection=collection,
                        batch_index=index,
                        attempts=attempt,
                        http_status=exc.status if isinstance(exc, ApiError) else None,
                        error=error_excerpt(exc),
                    )
                    raise
                delay = retry_policy.next_delay(attempt)
                IMPORT_RETRIES.labels(collection=collection).inc()
                logger.warning(
                    "Batch %s into %s failed on attempt %s (%s); retrying in %.2fs",
                    index,
                    collection,
                    attempt,
                    error_excerpt(exc),
                    delay,
                )
                if delay > 0:
                    self._sleep(delay)
                attempt += 1
                continue

            success, failure, samples = parse_import_response(raw)
            stats = BatchStats(
                index=index,
                docs_count=batch.docs_count,
                success_count=success,
                failure_count=failure,
                attempts=attempt,
                http_status=200,
                duration_ms=monotonic_ms() - started,
                bytes_sent=batch.byte_size,
                error_samples=samples,
            )
            self._record(collection, stats, outcome="ok" if failure == 0 else "rejected")
            return stats

    @staticmethod
    def _record(collection: str, stats: BatchStats, outcome: str) -> None:
        BATCH_IMPORTS.labels(collection=collection, outcome=outcome).inc()
        DOCUMENTS_IMPORTED.labels(collection=collection, result="success").inc(stats.success_count)
        DOCUMENTS_IMPORTED.labels(collection=collection, result="failure").inc(stats.failure_count)
        events.emit(
            events.BATCH_IMPORT,
            collection=collection,
            batch_index=stats.index,
            docs_count=stats.docs_count,
            success_count=stats.success_count,
            failure_count=stats.failure_count,
            attempts=stats.attempts,
            http_status=stats.http_status,
            bytes_sent=stats.bytes_sent,
            dry_run=outcome == "dry_run",
        )


def parse_import_response(raw: Any) -> tuple[int, int, list[str]]:
    """Count per-document results in an import response.

    Accepts the JSONL body returned by the service or an already decoded
    list of result objects. Anything else counts as nothing.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return _tally(_parse_lines(raw))
    if isinstance(raw, list):
        return _tally(raw)
    return 0, 0, []


def _parse_lines(text: str) -> Iterable[Any]:
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            yield orjson.loads(line)
        except orjson.JSONDecodeError:
            yield INVALID_LINE


def _tally(results: Iterable[Any]) -> tuple[int, int, list[str]]:
    success = 0
    failure = 0
    samples: list[str] = []
    for item in results:
        if isinstance(item, Mapping) and _truthy(item.get("success")):
            success += 1
            continue
        failure += 1
        if item == INVALID_LINE:
            samples.append(INVALID_LINE)
        elif isinstance(item, Mapping):
            message = item.get("error") or item.get("message")
            if message:
                samples.append(truncate(str(message), SAMPLE_LIMIT))
    return success, failure, samples[:MAX_ERROR_SAMPLES]


def _truthy(value: Any) -> bool:
    return value is True or str(value).lower() == "true"


__all__ = ["ImportDispatcher", "parse_import_response", "INVALID_LINE"]
