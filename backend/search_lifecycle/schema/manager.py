"""Blue-green schema management behind an alias.

Each schema change produces a new immutable physical generation named
``<logical>_v<N>``. The alias (the logical name) is repointed only after
the new generation has been populated, so readers never see a partially
built collection. Older generations are kept for rollback up to the
configured retention and then pruned, oldest first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import RollbackUnavailable, error_excerpt
from search_lifecycle.core.logging import get_logger
from search_lifecycle.core.metrics import ALIAS_SWAPS
from search_lifecycle.schema.diff import IN_SYNC, SchemaDiff, diff
from search_lifecycle.schema.types import CompiledSchema
from search_lifecycle.utils.time import monotonic_ms

if TYPE_CHECKING:
    from search_lifecycle.models.definitions import CollectionDefinition

logger = get_logger(__name__)

Populate = Callable[[str], Any]


@dataclass(slots=True)
class ApplyResult:
    logical: str
    new_physical: str | None
    previous_physical: str | None
    dropped_physicals: list[str] = field(default_factory=list)
    applied: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical": self.logical,
            "new_physical": self.new_physical,
            "previous_physical": self.previous_physical,
            "dropped_physicals": list(self.dropped_physicals),
            "applied": self.applied,
        }


@dataclass(slots=True)
class RollbackResult:
    logical: str
    new_target: str
    previous_target: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical": self.logical,
            "new_target": self.new_target,
            "previous_target": self.previous_target,
        }


@dataclass(slots=True)
class CollectionView:
    """Live view of a logical collection."""

    logical_name: str
    physical_generations: list[str]
    alias_target: str | None
    schema: dict[str, Any] | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical_name": self.logical_name,
            "physical_generations": list(self.physical_generations),
            "alias_target": self.alias_target,
            "schema": self.schema,
        }


def generation_name(logical: str, version: int) -> str:
    return f"{logical}_v{version}"


def generation_version(logical: str, physical: str) -> int | None:
    match = re.fullmatch(re.escape(logical) + r"_v(\d+)", physical)
    return int(match.group(1)) if match else None


class SchemaManager:
    """Diff, apply, roll back and prune physical generations."""

    def __init__(self, client: SearchClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    @staticmethod
    def diff(compiled: CompiledSchema, live: Any) -> SchemaDiff:
        return diff(compiled, live)

    def resolve_physical(self, logical: str) -> str | None:
        """Alias target, else a same-named physical collection, else ``None``."""
        target = self.client.resolve_alias(logical)
        if target:
            return target
        if self.client.retrieve_schema(logical) is not None:
            return logical
        return None

    def diff_live(self, definition: "CollectionDefinition") -> SchemaDiff:
        physical = self.resolve_physical(definition.logical_name)
        live = self.client.retrieve_schema(physical) if physical else None
        result = diff(definition.schema, live, physical=physical)
        result.logical = definition.logical_name
        events.emit(
            events.SCHEMA_DIFF,
            collection=definition.logical_name,
            physical=physical,
            status=result.status,
            added=len(result.added_fields),
            removed=len(result.removed_fields),
            changed=len(result.changed_fields),
        )
        return result

    def generations(self, logical: str) -> list[str]:
        """Physical generations of ``logical``, newest first."""
        versions: list[tuple[int, str]] = []
        for entry in self.client.list_collections():
            name = str(entry.get("name") or "")
            version = generation_version(logical, name)
            if version is not None:
                versions.append((version, name))
        return [name for _, name in sorted(versions, reverse=True)]

    def collection(self, definition: "CollectionDefinition") -> CollectionView:
        logical = definition.logical_name
        target = self.client.resolve_alias(logical)
        return CollectionView(
            logical_name=logical,
            physical_generations=self.generations(logical),
            alias_target=target,
            schema=self.client.retrieve_schema(target) if target else None,
        )

    def apply(self, definition: "CollectionDefinition", populate: Populate) -> ApplyResult:
        """Create, populate and alias a new generation when the schema requires it.

        Nothing happens when the live schema is in sync and aliased. If
        ``populate`` raises, the alias is left untouched, the new generation
        is deleted and the error propagates.
        """
        logical = definition.logical_name
        started = monotonic_ms()
        current = self.client.resolve_alias(logical)
        schema_diff = self.diff_live(definition)
        if schema_diff.status == IN_SYNC and current:
            return ApplyResult(logical=logical, new_physical=None, previous_physical=current, applied=False)

        existing = self.generations(logical)
        latest = generation_version(logical, existing[0]) if existing else 0
        new_physical = generation_name(logical, (latest or 0) + 1)
        self.client.create_collection(definition.schema.to_payload(new_physical))
        events.emit(events.PHYSICAL_CREATED, collection=logical, physical=new_physical, reason=schema_diff.status)

        try:
            populate(new_physical)
        except Exception:
            self._discard(logical, new_physical)
            raise

        if current != new_physical:
            self._swap(logical, new_physical, current, operation="apply")
        dropped = self._enforce_retention(definition, protect=new_physical)
        logger.info(
            "Applied schema for %s: %s -> %s in %.1fms",
            logical,
            current,
            new_physical,
            monotonic_ms() - started,
        )
        return ApplyResult(
            logical=logical,
            new_physical=new_physical,
            previous_physical=current,
            dropped_physicals=dropped,
            applied=True,
        )

    def rollback(self, definition: "CollectionDefinition") -> RollbackResult:
        logical = definition.logical_name
        current = self.client.resolve_alias(logical)
        previous = next(iter(self._candidates(logical, current, inclusive=False)), None)
        if previous is None:
            raise RollbackUnavailable(
                f"No previous generation available for {logical!r}; retention may be too small"
            )
        if current != previous:
            self._swap(logical, previous, current, operation="rollback")
        events.emit(events.ROLLBACK, collection=logical, new_target=previous, previous_target=current)
        return RollbackResult(logical=logical, new_target=previous, previous_target=current)

    def drop(self, definition: "CollectionDefinition") -> str | None:
        """Delete the aliased generation and the alias; ``None`` when absent."""
        logical = definition.logical_name
        physical = self.resolve_physical(logical)
        if physical is None:
            return None
        self.client.delete_collection(physical)
        if physical != logical:
            self.client.delete_alias(logical)
        events.emit(events.COLLECTION_DROPPED, collection=logical, physical=physical)
        return physical

    def prune(self, definition: "CollectionDefinition") -> list[str]:
        target = self.client.resolve_alias(definition.logical_name)
        return self._enforce_retention(definition, protect=target)

    # Internal helpers -------------------------------------------------

    def _candidates(self, logical: str, target: str | None, inclusive: bool) -> list[str]:
        """Generations no newer than ``target``, newest first.

        Generations above the alias target were never swapped in (or failed
        before they could be) and are never rollback or retention candidates.
        """
        ordered = self.generations(logical)
        ceiling = generation_version(logical, target) if target else None
        if ceiling is None:
            return [name for name in ordered if inclusive or name != target]
        kept: list[str] = []
        for name in ordered:
            version = generation_version(logical, name)
            if version is not None and (version <= ceiling if inclusive else version < ceiling):
                kept.append(name)
        return kept

    def _discard(self, logical: str, physical: str) -> None:
        """Best-effort removal of a generation whose population failed."""
        try:
            self.client.delete_collection(physical)
        except Exception as exc:
            logger.warning("Could not delete unpopulated %s for %s: %s", physical, logical, error_excerpt(exc))
            return
        events.emit(events.PHYSICAL_DISCARDED, collection=logical, physical=physical)

    def _swap(self, logical: str, physical: str, previous: str | None, operation: str) -> None:
        try:
            self.client.upsert_alias(logical, physical)
        except Exception as exc:
            logger.error(
                "Alias swap %s -> %s failed (%s); generation kept for retry",
                logical,
                physical,
                error_excerpt(exc),
            )
            raise
        ALIAS_SWAPS.labels(collection=logical, operation=operation).inc()
        events.emit(
            events.ALIAS_SWAPPED,
            collection=logical,
            new_target=physical,
            previous_target=previous,
            operation=operation,
        )

    def _enforce_retention(self, definition: "CollectionDefinition", protect: str | None) -> list[str]:
        logical = definition.logical_name
        keep = definition.effective_retention(self.settings.retention_keep)
        ordered = self._candidates(logical, protect, inclusive=True)
        doomed = [name for name in ordered[keep:] if name != protect]
        dropped: list[str] = []
        for name in reversed(doomed):
            if self.client.delete_collection(name):
                dropped.append(name)
        if dropped:
            events.emit(
                events.RETENTION_PRUNED,
                collection=logical,
                dropped=dropped,
                keep=keep,
            )
        return dropped


__all__ = [
    "SchemaManager",
    "ApplyResult",
    "RollbackResult",
    "CollectionView",
    "generation_name",
    "generation_version",
]
