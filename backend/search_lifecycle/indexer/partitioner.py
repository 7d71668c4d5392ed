"""Partition declarations and their compilation into ordered tokens."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, Sequence, Union

import orjson

from search_lifecycle.core.errors import ValidationError

PartitionHook = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class EnumeratedPartitions:
    tokens: Sequence[Any]


@dataclass(frozen=True, slots=True)
class RangePartitions:
    start: int
    stop: int
    step: int = 1


@dataclass(frozen=True, slots=True)
class CallbackPartitions:
    produce: Callable[[], Iterable[Any]]


PartitionSource = Union[EnumeratedPartitions, RangePartitions, CallbackPartitions]


@dataclass(frozen=True, slots=True)
class PartitionSpec:
    """How a collection splits into independently indexable partitions."""

    source: PartitionSource
    max_parallel: int | None = None
    before_partition: PartitionHook | None = None
    after_partition: PartitionHook | None = None


@dataclass(frozen=True, slots=True)
class CompiledPartitions:
    partitions: tuple[Any, ...]
    max_parallel: int | None = None

    @property
    def implicit(self) -> bool:
        return self.partitions == (None,)


IMPLICIT = CompiledPartitions(partitions=(None,), max_parallel=None)


class Partitioner:
    """Compile partition declarations into a deterministic token sequence."""

    @staticmethod
    def compile(spec: PartitionSpec | None) -> CompiledPartitions:
        if spec is None:
            return IMPLICIT
        if spec.max_parallel is not None and spec.max_parallel < 1:
            raise ValidationError("max_parallel must be a positive integer")
        tokens = _dedupe_tokens(_produce(spec.source))
        return CompiledPartitions(partitions=tokens, max_parallel=spec.max_parallel)


def _produce(source: PartitionSource) -> Iterable[Any]:
    if isinstance(source, EnumeratedPartitions):
        return source.tokens
    if isinstance(source, RangePartitions):
        if source.step == 0:
            raise ValidationError("range partitions require a non-zero step")
        return range(source.start, source.stop, source.step)
    if isinstance(source, CallbackPartitions):
        produced = source.produce()
        if isinstance(produced, (str, bytes)) or not isinstance(produced, Iterable):
            raise ValidationError("partition callback must return an iterable of partition tokens")
        return produced
    raise ValidationError(f"unsupported partition source: {type(source).__name__}")


def _dedupe_tokens(tokens: Iterable[Any]) -> tuple[Any, ...]:
    """Remove duplicates while preserving declaration order."""
    seen: set[Hashable] = set()
    unique: list[Any] = []
    for token in tokens:
        if token is None:
            raise ValidationError("partition tokens must not be None")
        key = _token_key(token)
        if key in seen:
            continue
        seen.add(key)
        unique.append(token)
    return tuple(unique)


def _token_key(token: Any) -> Hashable:
    if isinstance(token, Hashable):
        return (type(token).__name__, token)
    return orjson.dumps(token, default=repr, option=orjson.OPT_SORT_KEYS)


__all__ = [
    "EnumeratedPartitions",
    "RangePartitions",
    "CallbackPartitions",
    "PartitionSpec",
    "CompiledPartitions",
    "Partitioner",
    "IMPLICIT",
]
