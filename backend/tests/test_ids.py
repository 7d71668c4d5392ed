"""Tests for record identifiers."""

from __future__ import annotations

import pytest

from search_lifecycle.utils import ids


def test_ids_carry_kind_and_sort_by_creation(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = iter([1_700_000_000_000, 1_700_000_000_001])
    monkeypatch.setattr(ids, "now_ms", lambda: next(clock))
    first, second = ids.new_id("job"), ids.new_id("job")

    assert first.startswith("job_") and len(first) == len("job_") + 24
    assert first < second
    assert ids.id_kind(first) == "job"


@pytest.mark.parametrize("value, kind", [("run_0189abc", "run"), ("job_", None), ("plain", None)])
def test_id_kind(value: str, kind: str | None) -> None:
    assert ids.id_kind(value) == kind


@pytest.mark.parametrize("kind", ["", "index_job"])
def test_invalid_kind(kind: str) -> None:
    with pytest.raises(ValueError):
        ids.new_id(kind)
