"""Tests for sync/async dispatch and the background job queue."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from search_lifecycle.client.memory import InMemorySearchClient
from search_lifecycle.core.config import Settings
from search_lifecycle.db.sqlite import SQLiteDatabase
from search_lifecycle.indexer.dispatcher import ExecutionDispatcher
from search_lifecycle.indexer.indexer import PartitionIndexer
from search_lifecycle.indexer.jobs import BackgroundJobQueue
from search_lifecycle.indexer.types import ImportSummary

from factories import make_definition


@pytest.fixture
def indexer(memory_client: InMemorySearchClient, settings: Settings, no_wait_policy) -> PartitionIndexer:
    memory_client.create_collection(make_definition().schema.to_payload("products"))
    return PartitionIndexer(memory_client, settings, retry_policy=no_wait_policy)


@pytest.fixture
def queue(tmp_path: Path):
    db = SQLiteDatabase(tmp_path / "jobs.db")
    db.ensure_schema()
    job_queue = BackgroundJobQueue(db, workers=2)
    yield job_queue
    job_queue.shutdown()
    db.close()


def test_sync_dispatch_runs_inline(indexer: PartitionIndexer) -> None:
    handle = ExecutionDispatcher(indexer).dispatch(make_definition(), partition=0, metadata={"run": "full"})
    assert handle.mode == "sync"
    assert handle.job_id is None
    assert handle.summary is not None and handle.summary.docs_total == 2


def test_unknown_mode_is_rejected(indexer: PartitionIndexer) -> None:
    with pytest.raises(ValueError):
        ExecutionDispatcher(indexer).dispatch(make_definition(), mode="later")


def test_async_without_queue_falls_back_to_sync(
    memory_client: InMemorySearchClient, indexer: PartitionIndexer
) -> None:
    handle = ExecutionDispatcher(indexer).dispatch(make_definition(), mode="async")
    assert handle.mode == "sync"
    assert handle.summary is not None and handle.summary.status == "ok"
    assert len(memory_client.documents("products")) == 4


def test_async_dispatch_enqueues_job(
    memory_client: InMemorySearchClient, indexer: PartitionIndexer, queue: BackgroundJobQueue
) -> None:
    handle = ExecutionDispatcher(indexer, queue).dispatch(
        make_definition(), partition=1, mode="async", metadata={"run": "full"}, into="products"
    )
    assert handle.mode == "async"
    assert handle.summary is None
    assert handle.job_id and handle.job_id.startswith("job_")

    queue.wait(handle.job_id, timeout=10)
    status = queue.status(handle.job_id)
    assert status is not None
    assert status["status"] == "ok"
    assert status["collection"] == "products"
    assert status["partition"] == 1
    assert status["into"] == "products"
    assert status["metadata"] == {"run": "full"}
    assert status["summary"]["docs_total"] == 2
    assert status["started_at"] is not None and status["finished_at"] is not None
    assert sorted(memory_client.documents("products")) == ["1", "3"]


def test_failed_job_records_detail(queue: BackgroundJobQueue) -> None:
    def work():
        raise RuntimeError("worker crashed")

    job_id = queue.enqueue("products", None, "products", {}, work)
    queue.wait(job_id, timeout=10)
    status = queue.status(job_id)
    assert status["status"] == "failed"
    assert status["detail"] == "worker crashed"
    assert status["summary"] is None


def test_unknown_job_status(queue: BackgroundJobQueue) -> None:
    assert queue.status("job_missing") is None


def test_finished_jobs_release_their_futures(queue: BackgroundJobQueue) -> None:
    release = threading.Event()

    def work() -> ImportSummary:
        release.wait(10)
        return ImportSummary(collection="products", into="products")

    job_id = queue.enqueue("products", 0, "products", {}, work)
    assert queue.pending() == 1
    release.set()
    queue.wait(job_id, timeout=10)
    assert queue.pending() == 0

    queue.wait(job_id, timeout=1)
    assert queue.status(job_id)["status"] == "ok"
    queue.wait("job_missing", timeout=1)
