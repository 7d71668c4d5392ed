"""Background job queue for asynchronous partition imports."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Mapping, Protocol

import orjson

from search_lifecycle.core.logging import get_logger
from search_lifecycle.db.sqlite import SQLiteDatabase
from search_lifecycle.indexer.sources import partition_token
from search_lifecycle.indexer.types import ImportSummary
from search_lifecycle.utils.ids import new_id
from search_lifecycle.utils.time import now_ms

logger = get_logger(__name__)

JobWork = Callable[[], ImportSummary]
FINISHED = ("ok", "partial", "failed")


class JobQueue(Protocol):
    def enqueue(
        self,
        collection: str,
        partition: Any,
        into: str | None,
        metadata: Mapping[str, Any],
        work: JobWork,
    ) -> str:
        ...

    def status(self, job_id: str) -> dict[str, Any] | None:
        ...


class BackgroundJobQueue:
    """Run partition jobs on a thread pool and track them in ``index_jobs``."""

    def __init__(self, database: SQLiteDatabase, workers: int = 2) -> None:
        self.db = database
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="slc-job")
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def enqueue(
        self,
        collection: str,
        partition: Any,
        into: str | None,
        metadata: Mapping[str, Any],
        work: JobWork,
    ) -> str:
        job_id = new_id("job")
        self.db.execute(
            """
            INSERT INTO index_jobs (id, collection, partition_json, into_name, status, metadata_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                job_id,
                collection,
                _dumps(partition_token(partition)),
                into,
                "queued",
                _dumps(dict(metadata)),
                now_ms(),
            ],
        )
        self.db.commit()
        # Held across submit so a fast job cannot be forgotten before it is stored.
        with self._lock:
            self._futures[job_id] = self._executor.submit(self._run, job_id, work)
        return job_id

    def status(self, job_id: str) -> dict[str, Any] | None:
        row = self.db.query_one(
            """
            SELECT id, collection, partition_json, into_name, status, metadata_json, summary_json, detail,
                   created_at, started_at, finished_at
            FROM index_jobs WHERE id = ?
            """,
            [job_id],
        )
        if row is None:
            return None
        return {
            "id": row["id"],
            "collection": row["collection"],
            "partition": _loads(row["partition_json"]),
            "into": row["into_name"],
            "status": row["status"],
            "metadata": _loads(row["metadata_json"]) or {},
            "summary": _loads(row["summary_json"]),
            "detail": row["detail"],
            "created_at": row["created_at"],
            "started_at": row["started_at"],
            "finished_at": row["finished_at"],
        }

    def pending(self) -> int:
        with self._lock:
            return len(self._futures)

    def wait(self, job_id: str, timeout: float | None = None, poll_interval: float = 0.05) -> None:
        """Block until ``job_id`` has finished; ``TimeoutError`` after ``timeout`` seconds."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
            return
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            job = self.status(job_id)
            if job is None or job["status"] in FINISHED:
                return
            if deadline is not None and time.monotonic() >= deadline:
                raise TimeoutError(f"job {job_id} still {job['status']} after {timeout}s")
            time.sleep(poll_interval)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _run(self, job_id: str, work: JobWork) -> None:
        try:
            self._execute(job_id, work)
        finally:
            with self._lock:
                self._futures.pop(job_id, None)

    def _execute(self, job_id: str, work: JobWork) -> None:
        self.db.execute(
            "UPDATE index_jobs SET status = ?, started_at = ? WHERE id = ?",
            ["running", now_ms(), job_id],
        )
        self.db.commit()
        try:
            summary = work()
        except Exception as exc:
            logger.exception("Index job %s failed: %s", job_id, exc)
            self._finish(job_id, "failed", None, detail=str(exc))
            return
        self._finish(job_id, summary.status, summary.to_dict(), detail=summary.error)

    def _finish(self, job_id: str, status: str, summary: dict[str, Any] | None, detail: str | None) -> None:
        self.db.execute(
            "UPDATE index_jobs SET finished_at = ?, status = ?, summary_json = ?, detail = ? WHERE id = ?",
            [now_ms(), status, _dumps(summary) if summary is not None else None, detail, job_id],
        )
        self.db.commit()


def _dumps(value: Any) -> str:
    return orjson.dumps(value, default=repr).decode("utf-8")


def _loads(value: str | None) -> Any:
    return orjson.loads(value) if value else None


__all__ = ["JobQueue", "BackgroundJobQueue"]
