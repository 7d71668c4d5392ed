"""Document source adapters.

A source turns a partition token into batches of documents. Sources only
produce data; encoding, import and retries happen in the indexer.
"""

from __future__ import annotations

from dataclasses import dataclass
from itertools import islice
from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol, Sequence, runtime_checkable

from search_lifecycle.core.errors import ValidationError

Document = Mapping[str, Any]
Batch = Sequence[Document]


@runtime_checkable
class DocumentSource(Protocol):
    def batches(self, partition: Any) -> Iterable[Batch]:
        ...


@runtime_checkable
class KeyFilterSource(DocumentSource, Protocol):
    """Source able to fetch only the documents whose ``field`` is in ``ids``."""

    def batches_for_keys(self, field: str, ids: Sequence[Any]) -> Iterable[Batch]:
        ...


class IterableSource:
    """Serve a fixed collection of documents in ``batch_size`` chunks.

    ``partition_key`` selects documents whose value for that key equals the
    partition token; without it every partition sees every document.
    """

    def __init__(
        self,
        documents: Iterable[Document],
        batch_size: int = 2_000,
        partition_key: str | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._documents = list(documents)
        self.batch_size = batch_size
        self.partition_key = partition_key

    def batches(self, partition: Any) -> Iterator[list[Document]]:
        if partition is None or self.partition_key is None:
            selected: Iterable[Document] = self._documents
        else:
            selected = (doc for doc in self._documents if doc.get(self.partition_key) == partition)
        yield from _chunked(selected, self.batch_size)

    def batches_for_keys(self, field: str, ids: Sequence[Any]) -> Iterator[list[Document]]:
        wanted = {str(item) for item in ids}
        selected = (doc for doc in self._documents if str(doc.get(field)) in wanted)
        yield from _chunked(selected, self.batch_size)


class CallableSource:
    """Wrap ``fetch(partition) -> iterable of batches``."""

    def __init__(self, fetch: Callable[[Any], Iterable[Batch]]) -> None:
        self._fetch = fetch

    def batches(self, partition: Any) -> Iterator[list[Document]]:
        for idx, batch in enumerate(self._fetch(partition)):
            if isinstance(batch, Mapping) or not isinstance(batch, Iterable):
                raise ValidationError(
                    f"source must yield sequences of documents; got {type(batch).__name__} at batch {idx}"
                )
            yield list(batch)


@dataclass(frozen=True, slots=True)
class KeyPartition:
    """Partition selecting documents by key, used by partial cascades."""

    field: str
    ids: tuple[Any, ...]

    def as_token(self) -> dict[str, list[Any]]:
        return {self.field: list(self.ids)}


def partition_token(partition: Any) -> Any:
    """JSON-safe rendering of a partition for reports."""
    if isinstance(partition, KeyPartition):
        return partition.as_token()
    return partition


def _chunked(documents: Iterable[Document], size: int) -> Iterator[list[Document]]:
    iterator = iter(documents)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk


__all__ = [
    "Document",
    "Batch",
    "DocumentSource",
    "KeyFilterSource",
    "KeyPartition",
    "IterableSource",
    "CallableSource",
    "partition_token",
]
