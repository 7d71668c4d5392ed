"""Stale document rules, filter compilation and deletion.

A collection declares how to recognise documents that no longer exist
upstream. Rules are tagged variants resolved at registration time:

- ``ScopeRule(name)`` calls a named scope of the definition with the
  partition token;
- ``AttributeRule(field, value)`` matches one attribute;
- ``HashRule(mapping)`` matches every key of a mapping;
- ``RawFilterRule(expression)`` is a ready-made ``filter_by`` fragment;
- ``CallbackRule(fn)`` calls ``fn(partition)``.

Scopes and callbacks may return a string, a mapping or ``None``. Every
non-empty fragment is OR-ed into a single expression; deleting by that
expression is idempotent, so re-running it on a clean collection deletes
nothing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, Union

from search_lifecycle.client.base import SearchClient
from search_lifecycle.core import events
from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import LifecycleError, ValidationError, error_excerpt
from search_lifecycle.core.logging import get_logger
from search_lifecycle.core.metrics import STALE_DELETED
from search_lifecycle.indexer.types import CleanupResult
from search_lifecycle.utils.hashing import sha1_text
from search_lifecycle.utils.time import monotonic_ms

if TYPE_CHECKING:
    from search_lifecycle.models.definitions import CollectionDefinition

logger = get_logger(__name__)

_SAFE_BARE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_RESERVED = {"true", "false", "null"}


@dataclass(frozen=True, slots=True)
class ScopeRule:
    name: str


@dataclass(frozen=True, slots=True)
class AttributeRule:
    field: str
    value: Any


@dataclass(frozen=True, slots=True)
class HashRule:
    mapping: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class RawFilterRule:
    expression: str


@dataclass(frozen=True, slots=True)
class CallbackRule:
    fn: Callable[[Any], Any]


StaleRule = Union[ScopeRule, AttributeRule, HashRule, RawFilterRule, CallbackRule]


@dataclass(frozen=True, slots=True)
class DeletionFilter:
    expression: str
    filter_hash: str
    partition: Any = None

    @classmethod
    def build(cls, expression: str, partition: Any = None) -> "DeletionFilter":
        return cls(expression=expression, filter_hash=sha1_text(expression), partition=partition)


# Quoting ------------------------------------------------------------------


def escape_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def quote(value: Any) -> str:
    """Render a literal; strings are always double-quoted."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ", ".join(quote(item) for item in value) + "]"
    return f'"{escape_string(str(value))}"'


def quote_scalar(value: Any) -> str:
    """Render a literal, leaving safe identifier-like strings bare."""
    if isinstance(value, (list, tuple, set, frozenset)):
        return quote(value)
    if value is None or isinstance(value, (bool, int, float)):
        return quote(value)
    text = str(value)
    if text.strip().lower() in _RESERVED:
        return f'"{escape_string(text)}"'
    if _SAFE_BARE.match(text):
        return text
    return f'"{escape_string(text)}"'


def fragments_from_mapping(mapping: Mapping[str, Any]) -> list[str]:
    out: list[str] = []
    for field, value in mapping.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            out.append(f"{field}:={quote(list(value))}")
        else:
            out.append(f"{field}:={quote_scalar(value)}")
    return out


def merge_filters(filters: list[str]) -> str:
    if len(filters) == 1:
        return filters[0]
    return " || ".join(f"({item})" for item in filters)


def looks_suspicious(expression: str) -> bool:
    """True when an expression has no field comparator, like ``*`` or ``true``."""
    return ":" not in expression


# Compilation ----------------------------------------------------------------


class StaleFilter:
    """Compile the stale rules of a definition for one partition."""

    @staticmethod
    def compile(definition: "CollectionDefinition", partition: Any = None) -> DeletionFilter | None:
        fragments: list[str] = []
        for rule in definition.stale_rules:
            fragment = _rule_fragment(definition, rule, partition)
            if fragment:
                fragments.append(fragment)
        if not fragments:
            return None
        return DeletionFilter.build(merge_filters(fragments), partition=partition)

    @staticmethod
    def delete(client: SearchClient, collection: str, deletion: DeletionFilter, timeout_ms: int | None = None) -> int:
        """Issue the deletion; never negative, ``0`` when nothing matched."""
        deleted = client.delete_by_filter(collection, deletion.expression, timeout_ms=timeout_ms)
        return max(int(deleted or 0), 0)


def _rule_fragment(definition: "CollectionDefinition", rule: StaleRule, partition: Any) -> str | None:
    if isinstance(rule, AttributeRule):
        return _render({rule.field: rule.value})
    if isinstance(rule, HashRule):
        return _render(rule.mapping)
    if isinstance(rule, RawFilterRule):
        return _render(rule.expression)
    if isinstance(rule, ScopeRule):
        scope = definition.scopes.get(rule.name)
        if scope is None:
            raise ValidationError(f"unknown scope {rule.name!r} for {definition.logical_name!r}")
        return _render(scope(partition))
    if isinstance(rule, CallbackRule):
        return _render(rule.fn(partition))
    raise ValidationError(f"unsupported stale rule: {type(rule).__name__}")


def _render(result: Any) -> str | None:
    if result is None:
        return None
    if isinstance(result, str):
        return result.strip() or None
    if isinstance(result, Mapping):
        parts = fragments_from_mapping(result)
        return " && ".join(parts) if parts else None
    raise ValidationError(f"stale rule must produce a string, mapping or None; got {type(result).__name__}")


# Cleanup ----------------------------------------------------------------------


class StaleCleaner:
    """Run stale deletion for a definition with settings-driven guards."""

    def __init__(self, client: SearchClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def run(
        self,
        definition: "CollectionDefinition",
        partition: Any = None,
        into: str | None = None,
        dry_run: bool | None = None,
    ) -> CleanupResult:
        logical = definition.logical_name
        target = into or logical
        dry = self.settings.dry_run if dry_run is None else dry_run
        started = monotonic_ms()

        if not self.settings.stale_deletes_enabled:
            return self._skip(logical, partition, "disabled", started)

        try:
            deletion = StaleFilter.compile(definition, partition)
        except ValidationError as exc:
            return self._fail(logical, partition, None, exc, started)
        if deletion is None:
            return self._skip(logical, partition, "no_filter", started)
        if self.settings.stale_strict_mode and looks_suspicious(deletion.expression):
            return self._skip(logical, partition, "strict_blocked", started, deletion)
        if dry:
            return self._skip(logical, partition, "dry_run", started, deletion)

        try:
            deleted = StaleFilter.delete(
                self.client, target, deletion, timeout_ms=self.settings.stale_timeout_ms
            )
        except LifecycleError as exc:
            return self._fail(logical, partition, deletion, exc, started)

        STALE_DELETED.labels(collection=logical).inc(deleted)
        result = CleanupResult(
            collection=logical,
            status="ok",
            partition=partition,
            filter=deletion.expression,
            filter_hash=deletion.filter_hash,
            deleted_count=deleted,
            duration_ms=monotonic_ms() - started,
        )
        events.emit(
            events.STALE_DELETED,
            collection=logical,
            into=target,
            filter_hash=deletion.filter_hash,
            deleted_count=deleted,
            duration_ms=round(result.duration_ms, 1),
        )
        return result

    @staticmethod
    def _skip(
        logical: str,
        partition: Any,
        reason: str,
        started: float,
        deletion: DeletionFilter | None = None,
    ) -> CleanupResult:
        events.emit(events.STALE_SKIPPED, collection=logical, reason=reason)
        return CleanupResult(
            collection=logical,
            status="skipped",
            partition=partition,
            reason=reason,
            filter=deletion.expression if deletion else None,
            filter_hash=deletion.filter_hash if deletion else None,
            duration_ms=monotonic_ms() - started,
        )

    @staticmethod
    def _fail(
        logical: str,
        partition: Any,
        deletion: DeletionFilter | None,
        error: Exception,
        started: float,
    ) -> CleanupResult:
        reason = error_excerpt(error)
        logger.warning("Stale cleanup for %s failed: %s", logical, reason)
        events.emit(events.STALE_FAILED, level=logging.WARNING, collection=logical, error=reason)
        return CleanupResult(
            collection=logical,
            status="failed",
            partition=partition,
            reason=reason,
            filter=deletion.expression if deletion else None,
            filter_hash=deletion.filter_hash if deletion else None,
            duration_ms=monotonic_ms() - started,
        )


__all__ = [
    "ScopeRule",
    "AttributeRule",
    "HashRule",
    "RawFilterRule",
    "CallbackRule",
    "StaleRule",
    "DeletionFilter",
    "StaleFilter",
    "StaleCleaner",
    "quote",
    "quote_scalar",
    "merge_filters",
    "looks_suspicious",
]
