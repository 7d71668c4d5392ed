"""Cascade reindexing across join dependencies.

Collections that join another collection, or reference it through a schema
field, become stale when it changes. The graph is rebuilt for every run
from the registry (and optionally from live schemas), may contain cycles,
and is walked depth first with an explicit stack. Each stack frame carries
the chain of collections that led to it, so a dependent already on its own
chain is reported as ``skipped_cycle`` instead of being revisited.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Sequence

from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.errors import LifecycleError, ValidationError, error_excerpt
from search_lifecycle.core.logging import get_logger
from search_lifecycle.indexer.sources import KeyFilterSource, KeyPartition
from search_lifecycle.indexer.types import ImportSummary
from search_lifecycle.models.definitions import CollectionDefinition
from search_lifecycle.registry import CollectionRegistry

logger = get_logger(__name__)

PARTIAL = "partial"
FULL = "full"
SKIPPED_UNREGISTERED = "skipped_unregistered"
SKIPPED_CYCLE = "skipped_cycle"
SKIPPED_DUPLICATE = "skipped_duplicate"
PARTIAL_FAILED = "partial_failed"
FAILED = "failed"

CONTEXTS = ("full", "update")

_GENERATION_SUFFIX = re.compile(r"_v\d+$")

PartialRunner = Callable[[CollectionDefinition, KeyPartition], ImportSummary]
FullRunner = Callable[[CollectionDefinition], Any]


@dataclass(frozen=True, slots=True)
class CascadeEdge:
    target: int
    local_key: str


@dataclass(slots=True)
class CascadeOutcome:
    collection: str
    mode: str
    via: str
    depth: int
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "mode": self.mode,
            "via": self.via,
            "depth": self.depth,
            "error": self.error,
        }


@dataclass(slots=True)
class CascadeReport:
    source: str
    context: str
    ids_count: int = 0
    outcomes: list[CascadeOutcome] = field(default_factory=list)

    def count(self, mode: str) -> int:
        return sum(1 for item in self.outcomes if item.mode == mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "context": self.context,
            "ids_count": self.ids_count,
            "partial_count": self.count(PARTIAL),
            "full_count": self.count(FULL),
            "failed_count": self.count(FAILED),
            "partial_failed_count": self.count(PARTIAL_FAILED),
            "outcomes": [item.to_dict() for item in self.outcomes],
        }


@dataclass(slots=True)
class _Frame:
    node: int
    chain: tuple[int, ...]
    ids: tuple[Any, ...] | None


class CascadeGraph:
    """Arena of collection nodes with index-based adjacency."""

    def __init__(
        self,
        registry: CollectionRegistry,
        run_partial: PartialRunner,
        run_full: FullRunner,
    ) -> None:
        self.registry = registry
        self._run_partial = run_partial
        self._run_full = run_full
        self._names: list[str] = []
        self._index: dict[str, int] = {}
        self._edges: list[list[CascadeEdge]] = []

    # Construction -----------------------------------------------------

    def node(self, name: str) -> int:
        idx = self._index.get(name)
        if idx is None:
            idx = len(self._names)
            self._names.append(name)
            self._index[name] = idx
            self._edges.append([])
        return idx

    def add_edge(self, source: str, dependent: str, local_key: str) -> None:
        src = self.node(source)
        edge = CascadeEdge(target=self.node(dependent), local_key=local_key)
        if edge not in self._edges[src]:
            self._edges[src].append(edge)

    def dependents(self, source: str) -> list[tuple[str, str]]:
        idx = self._index.get(source)
        if idx is None:
            return []
        return [(self._names[edge.target], edge.local_key) for edge in self._edges[idx]]

    @classmethod
    def build(
        cls,
        registry: CollectionRegistry,
        run_partial: PartialRunner,
        run_full: FullRunner,
        client: SearchClient | None = None,
    ) -> "CascadeGraph":
        """Derive edges from registered joins and references, plus live schemas when a client is given."""
        graph = cls(registry, run_partial, run_full)
        for definition in registry:
            graph.node(definition.logical_name)
            for source, local_key in definition.dependencies():
                graph.add_edge(source, definition.logical_name, local_key)
        if client is not None:
            for source, dependent, local_key in _live_edges(client):
                graph.add_edge(source, dependent, local_key)
        return graph

    # Traversal --------------------------------------------------------

    def reindex_dependents(
        self,
        source: str,
        ids: Sequence[Any] | None = None,
        context: str = "full",
    ) -> CascadeReport:
        if context not in CONTEXTS:
            raise ValidationError(f"context must be one of {CONTEXTS}; got {context!r}")
        id_tuple = tuple(ids) if ids else None
        report = CascadeReport(source=source, context=context, ids_count=len(id_tuple or ()))
        root = self.node(source)
        done: set[int] = {root}
        stack = self._expand(_Frame(node=root, chain=(root,), ids=id_tuple if context == "update" else None))

        while stack:
            frame, edge = stack.pop()
            child = self._visit(report, frame, edge, done)
            if child is not None:
                stack.extend(self._expand(child))
        return report

    def _expand(self, frame: _Frame) -> list[tuple[_Frame, CascadeEdge]]:
        # Reversed so the first declared dependent is popped first.
        return [(frame, edge) for edge in reversed(self._edges[frame.node])]

    def _visit(
        self,
        report: CascadeReport,
        frame: _Frame,
        edge: CascadeEdge,
        done: set[int],
    ) -> _Frame | None:
        name = self._names[edge.target]
        via = self._names[frame.node]
        depth = len(frame.chain)
        if edge.target in frame.chain:
            self._record(report, CascadeOutcome(name, SKIPPED_CYCLE, via, depth))
            return None
        definition = self.registry.get(name)
        if definition is None:
            self._record(report, CascadeOutcome(name, SKIPPED_UNREGISTERED, via, depth))
            return None
        if edge.target in done:
            self._record(report, CascadeOutcome(name, SKIPPED_DUPLICATE, via, depth))
            return None
        done.add(edge.target)

        try:
            if frame.ids is not None and _can_partial(definition):
                partition = KeyPartition(field=edge.local_key, ids=frame.ids)
                mode = self._partial_or_full(report, definition, partition, via, depth)
            else:
                self._run_full(definition)
                mode = FULL
        except Exception as exc:
            logger.warning("Cascade reindex of %s via %s failed: %s", name, via, error_excerpt(exc))
            self._record(report, CascadeOutcome(name, FAILED, via, depth, error=error_excerpt(exc)))
            return None

        self._record(report, CascadeOutcome(name, mode, via, depth))
        return _Frame(node=edge.target, chain=frame.chain + (edge.target,), ids=None)

    def _partial_or_full(
        self,
        report: CascadeReport,
        definition: CollectionDefinition,
        partition: KeyPartition,
        via: str,
        depth: int,
    ) -> str:
        """Partial reindex by key; a failed partial run is recorded and retried in full."""
        name = definition.logical_name
        try:
            summary = self._run_partial(definition, partition)
            if summary.status == "failed":
                raise LifecycleError(summary.error or f"partial reindex of {name!r} failed")
            return PARTIAL
        except Exception as exc:
            logger.warning("Partial cascade reindex of %s failed, falling back to full: %s", name, error_excerpt(exc))
            self._record(report, CascadeOutcome(name, PARTIAL_FAILED, via, depth, error=error_excerpt(exc)))
        self._run_full(definition)
        return FULL

    @staticmethod
    def _record(report: CascadeReport, outcome: CascadeOutcome) -> None:
        report.outcomes.append(outcome)
        events.emit(
            events.CASCADE_OUTCOME,
            level=logging.WARNING if outcome.mode in (FAILED, PARTIAL_FAILED) else logging.INFO,
            source=report.source,
            collection=outcome.collection,
            mode=outcome.mode,
            via=outcome.via,
            depth=outcome.depth,
            error=outcome.error,
        )


def _can_partial(definition: CollectionDefinition) -> bool:
    # Key filters bypass a declared partitioner, so partitioned collections always run in full.
    return definition.partitioning is None and isinstance(definition.source, KeyFilterSource)


def _live_edges(client: SearchClient) -> Iterable[tuple[str, str, str]]:
    """``(source, dependent, local_key)`` from field references in live schemas."""
    for entry in client.list_collections():
        physical = str(entry.get("name") or "")
        if not physical:
            continue
        schema = client.retrieve_schema(physical) or {}
        dependent = _GENERATION_SUFFIX.sub("", physical)
        for item in schema.get("fields") or ():
            reference = item.get("reference")
            if not reference:
                continue
            target, _, _fk = str(reference).partition(".")
            if target:
                yield _GENERATION_SUFFIX.sub("", target), dependent, str(item.get("name"))


__all__ = [
    "CascadeGraph",
    "CascadeEdge",
    "CascadeOutcome",
    "CascadeReport",
    "PARTIAL",
    "FULL",
    "SKIPPED_UNREGISTERED",
    "SKIPPED_CYCLE",
    "SKIPPED_DUPLICATE",
    "PARTIAL_FAILED",
    "FAILED",
]
