"""Tests for partition rebuilds."""

from __future__ import annotations

import pytest

from search_lifecycle.client.memory import InMemorySearchClient
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import ApiError, PayloadTooLargeError
from search_lifecycle.indexer.indexer import PartitionIndexer
from search_lifecycle.indexer.partitioner import EnumeratedPartitions, PartitionSpec
from search_lifecycle.indexer.sources import CallableSource, IterableSource, KeyPartition
from search_lifecycle.reporting import dumps, partition_progress_line

from factories import make_definition, product_docs


@pytest.fixture
def indexer(memory_client: InMemorySearchClient, settings: Settings, no_wait_policy) -> PartitionIndexer:
    return PartitionIndexer(memory_client, settings, retry_policy=no_wait_policy)


@pytest.fixture
def live(memory_client: InMemorySearchClient) -> InMemorySearchClient:
    definition = make_definition()
    memory_client.create_collection(definition.schema.to_payload("products"))
    return memory_client


def test_rebuild_imports_every_batch_in_order(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition())
    assert summary.status == "ok"
    assert summary.into == "products"
    assert summary.docs_total == 4
    assert [stats.index for stats in summary.per_batch] == [0, 1]
    assert len(live.documents("products")) == 4


def test_source_batches_are_cut_to_batch_size(
    live: InMemorySearchClient, settings: Settings, no_wait_policy
) -> None:
    indexer = PartitionIndexer(live, settings.model_copy(update={"batch_size": 2}), retry_policy=no_wait_policy)
    definition = make_definition(source=CallableSource(lambda partition: [product_docs(5)]))

    summary = indexer.rebuild_partition(definition)
    assert summary.status == "ok"
    assert [stats.docs_count for stats in summary.per_batch] == [2, 2, 1]
    assert [stats.index for stats in summary.per_batch] == [0, 1, 2]
    assert len(live.calls_to("import_documents")) == 3


def test_partition_token_selects_documents(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(), partition=1)
    assert summary.docs_total == 2
    assert sorted(live.documents("products")) == ["1", "3"]


def test_payload_too_large_splits_batch(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    definition = make_definition(source=IterableSource(product_docs(6), batch_size=4))
    live.fail_next("import_documents", PayloadTooLargeError("request entity too large"))

    summary = indexer.rebuild_partition(definition)
    assert summary.status == "ok"
    assert [stats.index for stats in summary.per_batch] == [0, 1, 2]
    assert [stats.docs_count for stats in summary.per_batch] == [2, 2, 2]
    assert len(live.calls_to("import_documents")) == 4
    assert len(live.documents("products")) == 6


def test_single_oversized_document_aborts_partition(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    definition = make_definition(source=IterableSource(product_docs(3), batch_size=1))
    live.fail_next("import_documents", PayloadTooLargeError("request entity too large"))

    summary = indexer.rebuild_partition(definition)
    assert summary.status == "failed"
    assert summary.error.startswith("PayloadTooLargeError")
    assert summary.per_batch == []
    assert len(live.calls_to("import_documents")) == 1


def test_fatal_error_stops_remaining_batches(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    docs = product_docs(2) + [{"title": "no id", "store_id": 0}] + product_docs(2)
    definition = make_definition(source=IterableSource(docs, batch_size=2))

    summary = indexer.rebuild_partition(definition)
    assert summary.status == "failed"
    assert summary.error.startswith("ValidationError")
    assert summary.batches_total == 1
    assert len(live.calls_to("import_documents")) == 1


def test_missing_target_collection_fails_partition(indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(), into="products_v9")
    assert summary.status == "failed"
    assert "404" in summary.error or "not found" in summary.error


def test_rejected_documents_mark_partial(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    indexer.rebuild_partition(make_definition(documents=product_docs(2)))
    summary = indexer.rebuild_partition(make_definition(action="create"))
    assert summary.status == "partial"
    assert summary.success_total == 2
    assert summary.failed_total == 2


def test_every_document_rejected_is_failed(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(action="update"))
    assert summary.status == "failed"
    assert summary.error is None
    assert summary.failed_total == 4


def test_transient_failures_are_retried_inside_partition(
    live: InMemorySearchClient, indexer: PartitionIndexer
) -> None:
    live.fail_next("import_documents", ApiError("unavailable", status=503))
    summary = indexer.rebuild_partition(make_definition())
    assert summary.status == "ok"
    assert summary.per_batch[0].attempts == 2


def test_hooks_run_around_partition(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    calls: list[tuple[str, object]] = []
    spec = PartitionSpec(
        EnumeratedPartitions([0, 1]),
        before_partition=lambda p: calls.append(("before", p)),
        after_partition=lambda p: calls.append(("after", p)),
    )
    indexer.rebuild_partition(make_definition(partitioning=spec), partition=0)
    assert calls == [("before", 0), ("after", 0)]


def test_before_hook_skipped_while_logical_collection_absent(
    memory_client: InMemorySearchClient, indexer: PartitionIndexer
) -> None:
    calls: list[tuple[str, object]] = []
    spec = PartitionSpec(
        EnumeratedPartitions([0]),
        before_partition=lambda p: calls.append(("before", p)),
        after_partition=lambda p: calls.append(("after", p)),
    )
    definition = make_definition(partitioning=spec)
    memory_client.create_collection(definition.schema.to_payload("products_v1"))

    summary = indexer.rebuild_partition(definition, partition=0, into="products_v1")
    assert summary.status == "ok"
    assert calls == [("after", 0)]


def test_failing_hook_fails_partition(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    def explode(partition: object) -> None:
        raise RuntimeError("hook exploded")

    spec = PartitionSpec(EnumeratedPartitions([0]), before_partition=explode)
    summary = indexer.rebuild_partition(make_definition(partitioning=spec), partition=0)
    assert summary.status == "failed"
    assert summary.error == "RuntimeError: hook exploded"
    assert live.calls_to("import_documents") == []


def test_key_partition_uses_key_filtering(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(), partition=KeyPartition("store_id", (0,)))
    assert summary.docs_total == 2
    assert sorted(live.documents("products")) == ["2", "4"]
    assert summary.to_dict()["partition"] == {"store_id": [0]}


def test_key_partition_requires_key_filter_source(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    definition = make_definition(source=CallableSource(lambda partition: [product_docs(2)]))
    summary = indexer.rebuild_partition(definition, partition=KeyPartition("store_id", (0,)))
    assert summary.status == "failed"
    assert summary.error.startswith("ValidationError")


def test_dry_run_skips_imports(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(), dry_run=True)
    assert summary.status == "ok"
    assert summary.success_total == 4
    assert live.calls_to("import_documents") == []


def test_summary_rendering(live: InMemorySearchClient, indexer: PartitionIndexer) -> None:
    summary = indexer.rebuild_partition(make_definition(), partition=1)
    line = partition_progress_line(summary)
    assert line.startswith("partition=1 status=ok docs=2 failed=0 batches=1")
    payload = dumps(summary)
    assert '"partition_hash":' in payload
    assert '"status":"ok"' in payload
