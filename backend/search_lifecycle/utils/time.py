"""Time helpers."""

from __future__ import annotations

import time


def now_ms() -> int:
    """Return current timestamp in milliseconds."""
    return int(time.time() * 1000)


def now_s() -> int:
    """Return current unix timestamp in whole seconds."""
    return int(time.time())


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, for durations."""
    return time.perf_counter() * 1000.0
