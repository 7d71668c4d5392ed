"""Tests for batch encoding."""

from __future__ import annotations

import datetime as dt

import orjson
import pytest

from search_lifecycle.core.errors import ValidationError
from search_lifecycle.indexer.batches import TIMESTAMP_FIELD, BatchPlanner


def test_encode_produces_one_line_per_document() -> None:
    docs = [{"id": str(i), "title": f"Doc {i}"} for i in range(5)]
    batch = BatchPlanner().encode(docs, timestamp=1_700_000_000)

    lines = batch.payload.split(b"\n")
    assert batch.docs_count == 5
    assert batch.payload.endswith(b"\n") and not batch.payload.endswith(b"\n\n")
    assert len(lines) == 6 and lines[-1] == b""
    assert batch.byte_size == len(batch.payload)
    decoded = [orjson.loads(line) for line in lines[:-1]]
    assert [doc["id"] for doc in decoded] == ["0", "1", "2", "3", "4"]
    assert all(doc[TIMESTAMP_FIELD] == 1_700_000_000 for doc in decoded)


def test_encode_does_not_mutate_input() -> None:
    doc = {"id": "1", "title": "Original"}
    BatchPlanner().encode([doc])
    assert TIMESTAMP_FIELD not in doc


def test_empty_batch_has_empty_payload() -> None:
    batch = BatchPlanner().encode([])
    assert batch.payload == b""
    assert batch.docs_count == 0
    assert batch.byte_size == 0


def test_missing_identity_field_is_rejected() -> None:
    with pytest.raises(ValidationError, match="missing required"):
        BatchPlanner().encode([{"id": "1"}, {"title": "no id"}])


def test_custom_identity_field() -> None:
    planner = BatchPlanner(id_field="sku")
    batch = planner.encode([{"sku": "A-1"}])
    assert batch.docs_count == 1
    with pytest.raises(ValidationError):
        planner.encode([{"id": "1"}])


def test_non_mapping_documents_are_rejected() -> None:
    with pytest.raises(ValidationError, match="mappings"):
        BatchPlanner().encode([["id", "1"]])


def test_unserialisable_values_are_rejected() -> None:
    with pytest.raises(ValidationError, match="not serialisable"):
        BatchPlanner().encode([{"id": "1", "payload": object()}])


def test_native_datetime_values_serialise() -> None:
    batch = BatchPlanner().encode([{"id": "1", "at": dt.datetime(2024, 1, 2, tzinfo=dt.timezone.utc)}])
    assert b"2024-01-02T00:00:00+00:00" in batch.payload
