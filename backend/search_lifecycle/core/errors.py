"""Error taxonomy for collection lifecycle operations.

Errors fall into two groups that the retry policy and the orchestrator treat
differently:

- transport failures (``SearchConnectionError``, ``SearchTimeoutError`` and
  ``ApiError`` with status 429 or 5xx) may be retried locally;
- everything else is fatal for the unit of work that raised it.
"""

from __future__ import annotations

from typing import Any

MESSAGE_LIMIT = 200


class LifecycleError(Exception):
    """Base exception for search lifecycle errors."""


class ValidationError(LifecycleError):
    """Malformed document, missing identity field, or invalid declaration."""


class TransportError(LifecycleError):
    """Failure while talking to the search service."""


class SearchConnectionError(TransportError):
    """The search service could not be reached."""


class SearchTimeoutError(TransportError):
    """The search service did not answer in time."""


class ApiError(TransportError):
    """Non-success HTTP response from the search service."""

    def __init__(self, message: str, status: int, body: Any = None) -> None:
        super().__init__(message)
        self.status = int(status)
        self.body = body

    @property
    def transient(self) -> bool:
        return self.status == 429 or 500 <= self.status <= 599


class PayloadTooLargeError(ApiError):
    """HTTP 413: the caller should split the batch."""

    def __init__(self, message: str, body: Any = None) -> None:
        super().__init__(message, status=413, body=body)


class SchemaMissingOrDrifted(LifecycleError):
    """Partial run refused because the live schema is absent or out of date."""

    def __init__(self, collection: str, state: str) -> None:
        super().__init__(
            f"Collection {collection!r} is {state}; run a full indexation before partial runs"
        )
        self.collection = collection
        self.state = state


class RollbackUnavailable(LifecycleError):
    """Fewer than two retained generations exist."""


class PopulationFailed(LifecycleError):
    """A partition failed while populating a new physical generation."""

    def __init__(self, physical: str, failed_partitions: list[Any]) -> None:
        super().__init__(
            f"Population of {physical!r} failed for partitions {failed_partitions!r}; alias left untouched"
        )
        self.physical = physical
        self.failed_partitions = failed_partitions


class ConfirmationRequired(LifecycleError):
    """Destructive operation invoked without explicit confirmation."""


class UnknownCollection(LifecycleError):
    """No definition is registered for the logical collection name."""


def truncate_message(error: BaseException, limit: int = MESSAGE_LIMIT) -> str:
    """Return ``str(error)`` cut to ``limit`` characters."""
    return str(error)[:limit]


def error_excerpt(error: BaseException, limit: int = MESSAGE_LIMIT) -> str:
    """Render ``ClassName: message`` with the message truncated."""
    return f"{type(error).__name__}: {truncate_message(error, limit)}"


__all__ = [
    "LifecycleError",
    "ValidationError",
    "TransportError",
    "SearchConnectionError",
    "SearchTimeoutError",
    "ApiError",
    "PayloadTooLargeError",
    "SchemaMissingOrDrifted",
    "RollbackUnavailable",
    "PopulationFailed",
    "ConfirmationRequired",
    "UnknownCollection",
    "truncate_message",
    "error_excerpt",
]
