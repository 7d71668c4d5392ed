"""Statically registered collection definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from search_lifecycle.core.errors import ValidationError
from search_lifecycle.indexer.partitioner import PartitionSpec
from search_lifecycle.indexer.sources import DocumentSource
from search_lifecycle.indexer.stale import (
    AttributeRule,
    CallbackRule,
    HashRule,
    RawFilterRule,
    ScopeRule,
    StaleRule,
)
from search_lifecycle.schema.types import CompiledSchema

IMPORT_ACTIONS = ("upsert", "create", "update", "emplace")
_RULE_TYPES = (ScopeRule, AttributeRule, HashRule, RawFilterRule, CallbackRule)

Scope = Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class JoinSpec:
    """This collection joins ``collection`` through ``local_key``.

    A change in ``collection`` makes the declaring collection stale, so the
    join doubles as a cascade edge.
    """

    name: str
    collection: str
    local_key: str
    foreign_key: str = "id"


@dataclass(frozen=True, slots=True)
class CollectionDefinition:
    """Everything needed to manage one logical collection."""

    logical_name: str
    schema: CompiledSchema
    source: DocumentSource
    partitioning: PartitionSpec | None = None
    stale_rules: tuple[StaleRule, ...] = ()
    scopes: Mapping[str, Scope] = field(default_factory=dict)
    joins: tuple[JoinSpec, ...] = ()
    retention_keep: int | None = None
    id_field: str = "id"
    action: str = "upsert"

    def __post_init__(self) -> None:
        if not self.logical_name or not self.logical_name.strip():
            raise ValidationError("logical_name must be a non-empty string")
        if self.retention_keep is not None and self.retention_keep < 1:
            raise ValidationError(f"retention_keep must be at least 1 for {self.logical_name!r}")
        if self.action not in IMPORT_ACTIONS:
            raise ValidationError(f"action must be one of {IMPORT_ACTIONS}; got {self.action!r}")
        if not self.id_field:
            raise ValidationError("id_field must be a non-empty string")
        if not callable(getattr(self.source, "batches", None)):
            raise ValidationError(f"source for {self.logical_name!r} must provide batches(partition)")
        for rule in self.stale_rules:
            if not isinstance(rule, _RULE_TYPES):
                raise ValidationError(f"unsupported stale rule {rule!r}")
            if isinstance(rule, ScopeRule) and rule.name not in self.scopes:
                raise ValidationError(f"stale rule references unknown scope {rule.name!r}")
        for join in self.joins:
            if not join.collection or not join.local_key:
                raise ValidationError(f"join {join.name!r} requires collection and local_key")

    def effective_retention(self, default: int) -> int:
        return self.retention_keep if self.retention_keep is not None else default

    def dependencies(self) -> list[tuple[str, str]]:
        """``(source_collection, local_key)`` pairs this collection depends on."""
        edges: list[tuple[str, str]] = [(join.collection, join.local_key) for join in self.joins]
        for local, target, _fk in self.schema.references():
            edges.append((target, local))
        seen: set[tuple[str, str]] = set()
        unique: list[tuple[str, str]] = []
        for edge in edges:
            if edge not in seen:
                seen.add(edge)
                unique.append(edge)
        return unique


__all__ = ["CollectionDefinition", "JoinSpec", "IMPORT_ACTIONS"]
