"""Tests for single batch imports."""

from __future__ import annotations

import pytest

from search_lifecycle.client.memory import InMemorySearchClient
from search_lifecycle.core.errors import ApiError, PayloadTooLargeError, SearchConnectionError
from search_lifecycle.indexer.batches import BatchPlanner
from search_lifecycle.indexer.importer import INVALID_LINE, ImportDispatcher, parse_import_response
from search_lifecycle.indexer.retry import RetryPolicy


@pytest.fixture
def collection(memory_client: InMemorySearchClient) -> str:
    memory_client.create_collection({"name": "items", "fields": [{"name": "id", "type": "string"}]})
    return "items"


def _batch(count: int = 3):
    return BatchPlanner().encode([{"id": str(i)} for i in range(count)])


def test_import_success_counts(memory_client: InMemorySearchClient, collection: str, no_wait_policy) -> None:
    stats = ImportDispatcher().import_batch(memory_client, collection, "upsert", _batch(3), 0, no_wait_policy)
    assert stats.success_count == 3
    assert stats.failure_count == 0
    assert stats.attempts == 1
    assert stats.http_status == 200
    assert len(memory_client.documents(collection)) == 3


def test_transient_errors_retry_then_succeed(
    memory_client: InMemorySearchClient, collection: str, no_wait_policy
) -> None:
    sleeps: list[float] = []
    memory_client.fail_next("import_documents", SearchConnectionError("reset"), ApiError("busy", status=503))
    stats = ImportDispatcher(sleep=sleeps.append).import_batch(
        memory_client, collection, "upsert", _batch(2), 4, no_wait_policy
    )
    assert stats.attempts == 3
    assert stats.index == 4
    assert stats.success_count == 2
    assert len(memory_client.calls_to("import_documents")) == 3


def test_retry_sleeps_with_policy_delay(memory_client: InMemorySearchClient, collection: str) -> None:
    sleeps: list[float] = []
    policy = RetryPolicy(attempts=3, base_delay=0.5, max_delay=5, jitter_fraction=0)
    memory_client.fail_next("import_documents", SearchConnectionError("a"), SearchConnectionError("b"))
    ImportDispatcher(sleep=sleeps.append).import_batch(memory_client, collection, "upsert", _batch(1), 0, policy)
    assert sleeps == [0.5, 1.0]


def test_retry_budget_exhaustion_propagates(
    memory_client: InMemorySearchClient, collection: str, no_wait_policy
) -> None:
    memory_client.fail_next("import_documents", *[ApiError("busy", status=429)] * 3)
    with pytest.raises(ApiError):
        ImportDispatcher(sleep=lambda _: None).import_batch(
            memory_client, collection, "upsert", _batch(1), 0, no_wait_policy
        )
    assert len(memory_client.calls_to("import_documents")) == 3


def test_payload_too_large_is_not_retried(
    memory_client: InMemorySearchClient, collection: str, no_wait_policy
) -> None:
    memory_client.fail_next("import_documents", PayloadTooLargeError("too big"))
    with pytest.raises(PayloadTooLargeError):
        ImportDispatcher().import_batch(memory_client, collection, "upsert", _batch(2), 0, no_wait_policy)
    assert len(memory_client.calls_to("import_documents")) == 1


def test_dry_run_skips_network(memory_client: InMemorySearchClient, collection: str, no_wait_policy) -> None:
    batch = _batch(4)
    stats = ImportDispatcher().import_batch(
        memory_client, collection, "upsert", batch, 2, no_wait_policy, dry_run=True
    )
    assert stats.success_count == 4
    assert stats.failure_count == 0
    assert stats.bytes_sent == batch.byte_size
    assert memory_client.calls_to("import_documents") == []


def test_rejected_documents_are_counted(memory_client: InMemorySearchClient, collection: str, no_wait_policy) -> None:
    dispatcher = ImportDispatcher()
    dispatcher.import_batch(memory_client, collection, "upsert", _batch(2), 0, no_wait_policy)
    stats = dispatcher.import_batch(memory_client, collection, "create", _batch(3), 1, no_wait_policy)
    assert stats.success_count == 1
    assert stats.failure_count == 2
    assert len(stats.error_samples) == 2
    assert "already exists" in stats.error_samples[0]


def test_parse_jsonl_response_with_garbage_line() -> None:
    raw = '{"success": true}\nnot-json\n{"success": false, "error": "bad field"}\n\n'
    assert parse_import_response(raw) == (1, 2, [INVALID_LINE, "bad field"])


def test_parse_list_response_and_sample_limits() -> None:
    results = [{"success": "true"}] + [{"success": False, "error": "x" * 500}] * 8
    success, failure, samples = parse_import_response(results)
    assert (success, failure) == (1, 8)
    assert len(samples) == 5
    assert all(len(sample) == 200 for sample in samples)


def test_parse_unknown_response_shape() -> None:
    assert parse_import_response(None) == (0, 0, [])
