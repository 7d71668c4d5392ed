"""Test fixtures for the search lifecycle engine."""

from __future__ import annotations

import random
import sys
from pathlib import Path
from typing import Iterator

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from search_lifecycle.client.memory import InMemorySearchClient  # noqa: E402
from search_lifecycle.core.config import Settings  # noqa: E402
from search_lifecycle.indexer.retry import RetryPolicy  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("SLC_DB_PATH", str(tmp_path / "slc.db"))
    monkeypatch.setenv("SLC_SEARCH_BACKEND", "memory")
    monkeypatch.setenv("SLC_REGISTRY_MODULE", "sample_registry")
    monkeypatch.setenv("SLC_RETRY_BASE_DELAY", "0")
    monkeypatch.delenv("SLC_CONFIG", raising=False)
    monkeypatch.delenv("SLC_DISPATCH_MODE", raising=False)

    from search_lifecycle.api import dependencies as deps
    from search_lifecycle.core.config import get_settings

    def _reset() -> None:
        get_settings.cache_clear()
        deps.get_app_settings.cache_clear()
        if deps._QUEUE is not None:
            deps._QUEUE.shutdown()
        if deps._DB is not None:
            deps._DB.close()
        deps._DB = None
        deps._CLIENT = None
        deps._REGISTRY = None
        deps._QUEUE = None
        deps._ORCHESTRATOR = None

    _reset()
    yield
    _reset()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        search_backend="memory",
        db_path=tmp_path / "slc.db",
        retry_base_delay=0,
        retry_jitter_fraction=0,
    )


@pytest.fixture
def memory_client() -> InMemorySearchClient:
    return InMemorySearchClient()


@pytest.fixture
def no_wait_policy() -> RetryPolicy:
    return RetryPolicy(attempts=3, base_delay=0, max_delay=0, jitter_fraction=0, rng=random.Random(7))
