"""Search service client protocol."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable


@runtime_checkable
class SearchClient(Protocol):
    """Operations the lifecycle engine needs from the search service.

    ``delete_collection`` returns ``False`` when the collection was already
    absent; ``resolve_alias`` and ``retrieve_schema`` return ``None`` for
    unknown names. Transport problems raise ``TransportError`` subclasses.
    """

    def create_collection(self, schema: Mapping[str, Any]) -> dict[str, Any]:
        ...

    def delete_collection(self, name: str) -> bool:
        ...

    def list_collections(self) -> list[dict[str, Any]]:
        ...

    def resolve_alias(self, logical: str) -> str | None:
        ...

    def upsert_alias(self, logical: str, physical: str) -> None:
        ...

    def delete_alias(self, logical: str) -> bool:
        ...

    def retrieve_schema(self, name: str) -> dict[str, Any] | None:
        ...

    def import_documents(self, name: str, payload: bytes, action: str) -> str | Sequence[Mapping[str, Any]]:
        ...

    def delete_by_filter(self, name: str, filter_by: str, timeout_ms: int | None = None) -> int:
        ...


__all__ = ["SearchClient"]
