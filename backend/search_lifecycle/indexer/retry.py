"""Retry eligibility and backoff for batch imports."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from search_lifecycle.core.config import Settings
from search_lifecycle.core.errors import ApiError, SearchConnectionError, SearchTimeoutError


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with bounded jitter.

    ``attempts`` is the total number of tries, so ``retryable(attempts, ...)``
    is always ``False``. Deterministic apart from jitter; pass a seeded
    ``rng`` to make delays reproducible.
    """

    attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter_fraction: float = 0.2
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if not 0 <= self.jitter_fraction <= 1:
            raise ValueError("jitter_fraction must be within [0, 1]")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter_fraction=settings.retry_jitter_fraction,
        )

    def retryable(self, attempt: int, error: BaseException) -> bool:
        """Whether a failure on 1-based ``attempt`` should be tried again."""
        if attempt >= self.attempts:
            return False
        if isinstance(error, (SearchConnectionError, SearchTimeoutError)):
            return True
        if isinstance(error, ApiError):
            return error.transient
        return False

    def next_delay(self, attempt: int) -> float:
        """Seconds to wait after a failure on 1-based ``attempt``."""
        exp = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = exp * self.jitter_fraction
        delay = exp + self.rng.uniform(-jitter, jitter) if jitter else exp
        return max(delay, 0.0)


__all__ = ["RetryPolicy"]
