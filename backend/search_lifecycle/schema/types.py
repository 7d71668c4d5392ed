"""Compiled schema structures shared by diffing and collection creation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from search_lifecycle.core.errors import ValidationError

# Per-field flags compared only when the compiled schema declares them.
FIELD_FLAGS = ("locale", "sort", "optional", "infix", "facet", "index")

COLLECTION_OPTIONS = (
    "default_sorting_field",
    "token_separators",
    "symbols_to_index",
    "enable_nested_fields",
)

_TYPE_ALIASES = {
    "boolean": "bool",
    "integer": "int64",
    "int": "int64",
    "decimal": "float",
}


def normalize_type(value: str) -> str:
    lowered = str(value).strip().lower()
    if lowered.endswith("[]"):
        inner = lowered[:-2]
        return f"{_TYPE_ALIASES.get(inner, inner)}[]"
    return _TYPE_ALIASES.get(lowered, lowered)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One field of a compiled or live schema."""

    name: str
    type: str
    reference: str | None = None
    locale: str | None = None
    sort: bool | None = None
    optional: bool | None = None
    infix: bool | None = None
    facet: bool | None = None
    index: bool | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "FieldSpec":
        name = raw.get("name")
        ftype = raw.get("type")
        if not name or not ftype:
            raise ValidationError(f"schema field requires name and type: {dict(raw)!r}")
        reference = raw.get("reference")
        return cls(
            name=str(name),
            type=normalize_type(ftype),
            reference=str(reference) if reference not in (None, "") else None,
            **{flag: raw.get(flag) for flag in FIELD_FLAGS},
        )

    def declared_flags(self) -> dict[str, Any]:
        return {flag: getattr(self, flag) for flag in FIELD_FLAGS if getattr(self, flag) is not None}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "type": self.type}
        if self.reference:
            payload["reference"] = self.reference
        payload.update(self.declared_flags())
        return payload


@dataclass(frozen=True, slots=True)
class CompiledSchema:
    """Schema description for one logical collection."""

    name: str
    fields: tuple[FieldSpec, ...]
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        names = [item.name for item in self.fields]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"duplicate schema fields: {duplicates}")
        unknown = sorted(set(self.options) - set(COLLECTION_OPTIONS))
        if unknown:
            raise ValidationError(f"unknown collection options: {unknown}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "CompiledSchema":
        """Parse a live schema response (or a compiled dict) into a schema."""
        fields = tuple(FieldSpec.from_mapping(item) for item in raw.get("fields") or ())
        options = {key: raw[key] for key in COLLECTION_OPTIONS if raw.get(key) is not None}
        return cls(name=str(raw.get("name") or ""), fields=fields, options=options)

    def fields_by_name(self) -> dict[str, FieldSpec]:
        return {item.name: item for item in self.fields if item.name != "id"}

    def references(self) -> list[tuple[str, str, str | None]]:
        """Return ``(local_field, target_collection, foreign_key)`` triples."""
        refs: list[tuple[str, str, str | None]] = []
        for item in self.fields:
            if not item.reference:
                continue
            target, _, foreign_key = item.reference.partition(".")
            if target:
                refs.append((item.name, target, foreign_key or None))
        return refs

    def to_payload(self, physical_name: str) -> dict[str, Any]:
        """Build a create-collection body for ``physical_name``."""
        payload: dict[str, Any] = {
            "name": physical_name,
            "fields": [item.to_payload() for item in self.fields],
        }
        payload.update(self.options)
        return payload


__all__ = ["FieldSpec", "CompiledSchema", "normalize_type", "FIELD_FLAGS", "COLLECTION_OPTIONS"]
