"""Encode document batches into JSONL import payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import orjson

from search_lifecycle.core.errors import ValidationError
from search_lifecycle.utils.time import now_s

TIMESTAMP_FIELD = "doc_updated_at"


@dataclass(frozen=True, slots=True)
class EncodedBatch:
    payload: bytes
    docs_count: int

    @property
    def byte_size(self) -> int:
        return len(self.payload)


class BatchPlanner:
    """Validate documents and serialise them one record per line."""

    def __init__(self, id_field: str = "id") -> None:
        self.id_field = id_field

    def encode(self, documents: Iterable[Any], timestamp: int | None = None) -> EncodedBatch:
        stamp = now_s() if timestamp is None else timestamp
        lines: list[bytes] = []
        for position, raw in enumerate(documents):
            if not isinstance(raw, Mapping):
                raise ValidationError(
                    f"documents must be mappings with an {self.id_field!r} key; got {type(raw).__name__} at {position}"
                )
            if raw.get(self.id_field) in (None, ""):
                raise ValidationError(f"document at position {position} is missing required {self.id_field!r}")
            doc = dict(raw)
            doc[TIMESTAMP_FIELD] = stamp
            try:
                lines.append(orjson.dumps(doc))
            except TypeError as exc:
                raise ValidationError(f"document {doc[self.id_field]!r} is not serialisable: {exc}") from exc
        payload = b"\n".join(lines) + b"\n" if lines else b""
        return EncodedBatch(payload=payload, docs_count=len(lines))


__all__ = ["BatchPlanner", "EncodedBatch", "TIMESTAMP_FIELD"]
