"""Tests for cascade reindexing over the dependency graph."""

from __future__ import annotations

import pytest

from search_lifecycle.cascade import (
    FAILED,
    FULL,
    PARTIAL,
    PARTIAL_FAILED,
    SKIPPED_CYCLE,
    SKIPPED_DUPLICATE,
    SKIPPED_UNREGISTERED,
    CascadeGraph,
)
from search_lifecycle.client.memory import InMemorySearchClient
from search_lifecycle.core.errors import ValidationError
from search_lifecycle.indexer.partitioner import EnumeratedPartitions, PartitionSpec
from search_lifecycle.indexer.sources import CallableSource, KeyPartition
from search_lifecycle.indexer.types import ImportSummary
from search_lifecycle.models.definitions import CollectionDefinition, JoinSpec
from search_lifecycle.registry import CollectionRegistry
from search_lifecycle.schema.types import CompiledSchema, FieldSpec

from factories import make_definition


def _join(target: str, key: str | None = None) -> JoinSpec:
    return JoinSpec(name=target, collection=target, local_key=key or f"{target}_id")


class Recorder:
    def __init__(self, fail: set[str] | None = None, fail_partial: set[str] | None = None) -> None:
        self.partial: list[tuple[str, KeyPartition]] = []
        self.full: list[str] = []
        self.fail = fail or set()
        self.fail_partial = fail_partial or set()

    def run_partial(self, definition: CollectionDefinition, partition: KeyPartition) -> ImportSummary:
        name = definition.logical_name
        if name in self.fail:
            raise RuntimeError(f"{name} source offline")
        self.partial.append((name, partition))
        summary = ImportSummary(collection=name, into=name, partition=partition)
        if name in self.fail_partial:
            summary.error = "ApiError: import rejected"
        return summary

    def run_full(self, definition: CollectionDefinition) -> None:
        if definition.logical_name in self.fail:
            raise RuntimeError(f"{definition.logical_name} source offline")
        self.full.append(definition.logical_name)


def _graph(*definitions: CollectionDefinition, recorder: Recorder, client=None) -> CascadeGraph:
    registry = CollectionRegistry()
    for definition in definitions:
        registry.register(definition)
    return CascadeGraph.build(registry, recorder.run_partial, recorder.run_full, client=client)


def _modes(report) -> list[tuple[str, str, str]]:
    return [(item.collection, item.mode, item.via) for item in report.outcomes]


def test_cycle_visits_dependent_once() -> None:
    recorder = Recorder()
    graph = _graph(
        make_definition("a", joins=(_join("b"),)),
        make_definition("b", joins=(_join("a"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("a")
    assert _modes(report) == [("b", FULL, "a"), ("a", SKIPPED_CYCLE, "b")]
    assert recorder.full == ["b"]
    assert report.outcomes[1].depth == 2


def test_longer_cycle_terminates() -> None:
    recorder = Recorder()
    graph = _graph(
        make_definition("a", joins=(_join("c"),)),
        make_definition("b", joins=(_join("a"),)),
        make_definition("c", joins=(_join("b"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("a")
    assert recorder.full == ["b", "c"]
    assert report.outcomes[-1].mode == SKIPPED_CYCLE
    assert report.outcomes[-1].collection == "a"


def test_diamond_reindexes_shared_dependent_once() -> None:
    recorder = Recorder()
    graph = _graph(
        make_definition("a"),
        make_definition("b", joins=(_join("a"),)),
        make_definition("c", joins=(_join("a"), _join("b"))),
        recorder=recorder,
    )
    report = graph.reindex_dependents("a")
    assert _modes(report) == [("b", FULL, "a"), ("c", FULL, "b"), ("c", SKIPPED_DUPLICATE, "a")]
    assert recorder.full == ["b", "c"]


def test_unregistered_dependents_are_skipped() -> None:
    recorder = Recorder()
    graph = _graph(make_definition("a"), recorder=recorder)
    graph.add_edge("a", "ghost", "a_id")
    report = graph.reindex_dependents("a")
    assert _modes(report) == [("ghost", SKIPPED_UNREGISTERED, "a")]
    assert recorder.full == []


def test_live_schema_references_add_edges(memory_client: InMemorySearchClient) -> None:
    memory_client.create_collection(
        {
            "name": "reviews_v2",
            "fields": [
                {"name": "id", "type": "string"},
                {"name": "product_id", "type": "string", "reference": "products_v4.id"},
            ],
        }
    )
    recorder = Recorder()
    graph = _graph(make_definition("products"), recorder=recorder, client=memory_client)
    assert graph.dependents("products") == [("reviews", "product_id")]
    report = graph.reindex_dependents("products")
    assert _modes(report) == [("reviews", SKIPPED_UNREGISTERED, "products")]


def test_schema_references_are_dependencies() -> None:
    schema = CompiledSchema(
        name="reviews",
        fields=(
            FieldSpec(name="id", type="string"),
            FieldSpec(name="product_id", type="string", reference="products.id"),
        ),
    )
    definition = make_definition("reviews", schema=schema, joins=(_join("products", "product_id"),))
    assert definition.dependencies() == [("products", "product_id")]


def test_update_with_ids_runs_partial_on_first_hop_only() -> None:
    recorder = Recorder()
    graph = _graph(
        make_definition("products"),
        make_definition("offers", joins=(_join("products", "product_id"),)),
        make_definition("bundles", joins=(_join("offers", "offer_id"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("products", ids=[7, 9], context="update")
    assert _modes(report) == [("offers", PARTIAL, "products"), ("bundles", FULL, "offers")]
    assert recorder.partial == [("offers", KeyPartition("product_id", (7, 9)))]
    assert report.ids_count == 2
    assert report.to_dict()["partial_count"] == 1


def test_ids_ignored_outside_update_context() -> None:
    recorder = Recorder()
    graph = _graph(
        make_definition("products"),
        make_definition("offers", joins=(_join("products", "product_id"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("products", ids=[7], context="full")
    assert _modes(report) == [("offers", FULL, "products")]
    assert recorder.partial == []


def test_source_without_key_filtering_runs_full() -> None:
    recorder = Recorder()
    offers = make_definition(
        "offers",
        joins=(_join("products", "product_id"),),
        source=CallableSource(lambda partition: []),
    )
    graph = _graph(make_definition("products"), offers, recorder=recorder)
    report = graph.reindex_dependents("products", ids=[7], context="update")
    assert _modes(report) == [("offers", FULL, "products")]


def test_failures_are_captured_per_dependent() -> None:
    recorder = Recorder(fail={"b"}, fail_partial={"c"})
    graph = _graph(
        make_definition("a"),
        make_definition("b", joins=(_join("a"),)),
        make_definition("c", joins=(_join("a"),)),
        make_definition("d", joins=(_join("b"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("a", ids=["x"], context="update")
    assert _modes(report) == [
        ("b", PARTIAL_FAILED, "a"),
        ("b", FAILED, "a"),
        ("c", PARTIAL_FAILED, "a"),
        ("c", FULL, "a"),
    ]
    assert report.outcomes[1].error == "RuntimeError: b source offline"
    assert "import rejected" in report.outcomes[2].error
    assert recorder.full == ["c"]
    assert report.count(FAILED) == 1


def test_unknown_source_has_no_dependents() -> None:
    graph = _graph(make_definition("a"), recorder=Recorder())
    report = graph.reindex_dependents("nowhere")
    assert report.outcomes == []


def test_invalid_context() -> None:
    graph = _graph(make_definition("a"), recorder=Recorder())
    with pytest.raises(ValidationError):
        graph.reindex_dependents("a", context="partial")


def test_failed_partial_reindex_falls_back_to_full() -> None:
    recorder = Recorder(fail_partial={"orders"})
    graph = _graph(
        make_definition("brands"),
        make_definition("orders", joins=(_join("brands", "brand_id"),)),
        recorder=recorder,
    )
    report = graph.reindex_dependents("brands", ids=[1], context="update")
    assert _modes(report) == [("orders", PARTIAL_FAILED, "brands"), ("orders", FULL, "brands")]
    assert "import rejected" in report.outcomes[0].error
    assert recorder.full == ["orders"]
    assert report.to_dict()["partial_failed_count"] == 1
    assert report.to_dict()["full_count"] == 1


def test_partitioned_dependent_never_runs_partial() -> None:
    recorder = Recorder()
    orders = make_definition(
        "orders",
        joins=(_join("brands", "brand_id"),),
        partitioning=PartitionSpec(EnumeratedPartitions([0, 1])),
    )
    graph = _graph(make_definition("brands"), orders, recorder=recorder)
    report = graph.reindex_dependents("brands", ids=[1], context="update")
    assert _modes(report) == [("orders", FULL, "brands")]
    assert recorder.partial == []
