"""Structural schema diffing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from search_lifecycle.schema.types import COLLECTION_OPTIONS, CompiledSchema, FieldSpec

MISSING = "missing"
DRIFT = "drift"
IN_SYNC = "in_sync"


@dataclass(slots=True)
class SchemaDiff:
    """Differences between a compiled schema and the live collection.

    ``changed_fields`` maps a field name to ``{attribute: {"from": live,
    "to": compiled}}``. A missing live collection is reported as
    ``collection_options == {"live": "missing"}`` with empty field lists.
    """

    logical: str
    physical: str | None
    added_fields: list[FieldSpec] = field(default_factory=list)
    removed_fields: list[FieldSpec] = field(default_factory=list)
    changed_fields: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    collection_options: dict[str, Any] = field(default_factory=dict)

    @property
    def missing(self) -> bool:
        return self.collection_options.get("live") == MISSING

    @property
    def empty(self) -> bool:
        return not (self.added_fields or self.removed_fields or self.changed_fields or self.collection_options)

    @property
    def status(self) -> str:
        if self.missing:
            return MISSING
        return IN_SYNC if self.empty else DRIFT

    def to_dict(self) -> dict[str, Any]:
        return {
            "logical": self.logical,
            "physical": self.physical,
            "status": self.status,
            "added_fields": [item.to_payload() for item in self.added_fields],
            "removed_fields": [item.to_payload() for item in self.removed_fields],
            "changed_fields": self.changed_fields,
            "collection_options": self.collection_options,
        }

    def pretty(self) -> str:
        """Compact human-readable rendering."""
        header = f"Collection: {self.logical}"
        if self.physical and self.physical != self.logical:
            header += f" (physical: {self.physical})"
        lines = [header]
        if self.missing:
            lines.append("  live collection is missing")
            return "\n".join(lines)
        if self.empty:
            lines.append("  in sync")
            return "\n".join(lines)
        for item in self.added_fields:
            lines.append(f"  + {item.name}: {item.type}")
        for item in self.removed_fields:
            lines.append(f"  - {item.name}: {item.type}")
        for name in sorted(self.changed_fields):
            for attr, change in sorted(self.changed_fields[name].items()):
                lines.append(f"  ~ {name}.{attr}: {change['from']!r} -> {change['to']!r}")
        for key in sorted(self.collection_options):
            change = self.collection_options[key]
            lines.append(f"  ~ collection.{key}: {change['from']!r} -> {change['to']!r}")
        return "\n".join(lines)


def diff(
    compiled: CompiledSchema,
    live: CompiledSchema | Mapping[str, Any] | None,
    physical: str | None = None,
) -> SchemaDiff:
    """Compare ``compiled`` against ``live`` without touching any state."""
    if live is None:
        return SchemaDiff(
            logical=compiled.name,
            physical=physical,
            collection_options={"live": MISSING},
        )
    live_schema = live if isinstance(live, CompiledSchema) else CompiledSchema.from_mapping(live)

    compiled_fields = compiled.fields_by_name()
    live_fields = live_schema.fields_by_name()

    added = [compiled_fields[name] for name in sorted(compiled_fields.keys() - live_fields.keys())]
    removed = [live_fields[name] for name in sorted(live_fields.keys() - compiled_fields.keys())]

    changed: dict[str, dict[str, dict[str, Any]]] = {}
    for name in sorted(compiled_fields.keys() & live_fields.keys()):
        field_changes = _diff_field(compiled_fields[name], live_fields[name])
        if field_changes:
            changed[name] = field_changes

    options: dict[str, Any] = {}
    for key in COLLECTION_OPTIONS:
        wanted = compiled.options.get(key)
        if wanted is None:
            continue
        current = live_schema.options.get(key)
        if not _values_equal(wanted, current):
            options[key] = {"from": current, "to": wanted}

    return SchemaDiff(
        logical=compiled.name,
        physical=physical,
        added_fields=added,
        removed_fields=removed,
        changed_fields=changed,
        collection_options=options,
    )


def _diff_field(compiled: FieldSpec, live: FieldSpec) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if compiled.type != live.type:
        changes["type"] = {"from": live.type, "to": compiled.type}
    if (compiled.reference or None) != (live.reference or None):
        changes["reference"] = {"from": live.reference, "to": compiled.reference}
    for attr, wanted in compiled.declared_flags().items():
        current = getattr(live, attr)
        if not _values_equal(wanted, current):
            changes[attr] = {"from": current, "to": wanted}
    return changes


def _values_equal(a: Any, b: Any) -> bool:
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return list(a) == list(b)
    return str(a) == str(b)


__all__ = ["SchemaDiff", "diff", "MISSING", "DRIFT", "IN_SYNC"]
