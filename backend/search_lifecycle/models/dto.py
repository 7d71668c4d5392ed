"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class CollectionSummary(BaseModel):
    name: str
    alias_target: str | None = None
    generations: list[str] = Field(default_factory=list)


class CollectionStatusResponse(BaseModel):
    collection: str
    state: Literal["absent", "present_in_sync", "present_drift"]
    diff: dict[str, Any]
    alias_target: str | None = None
    generations: list[str]


class DiffResponse(BaseModel):
    collection: str
    status: Literal["missing", "drift", "in_sync"]
    diff: dict[str, Any]
    pretty: str


class IndexateRequest(BaseModel):
    partitions: list[Any] | None = Field(
        default=None, description="Partition tokens for a partial run; omit for a full run"
    )


class ReindexateRequest(BaseModel):
    confirm: bool = Field(default=False, description="Required: drops the live collection first")


class CleanupRequest(BaseModel):
    partition: Any = None
    dry_run: bool | None = None


class CascadeRequest(BaseModel):
    ids: list[Any] | None = None
    context: Literal["full", "update"] = "full"


class RunResponse(BaseModel):
    collection: str
    mode: Literal["full", "partial"]
    state: str
    status: Literal["ok", "partial", "failed", "enqueued"]
    apply: dict[str, Any] | None = None
    partitions: list[dict[str, Any]] = Field(default_factory=list)
    cleanup: list[dict[str, Any]] = Field(default_factory=list)
    cascade: dict[str, Any] | None = None
    handles: list[dict[str, Any]] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)


class RollbackResponse(BaseModel):
    logical: str
    new_target: str
    previous_target: str | None = None


class CleanupResponse(BaseModel):
    collection: str
    status: Literal["ok", "skipped", "failed"]
    partition: Any = None
    reason: str | None = None
    filter: str | None = None
    filter_hash: str | None = None
    deleted_count: int
    duration_ms: float


class JobResponse(BaseModel):
    id: str
    collection: str
    partition: Any = None
    into: str | None = None
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    summary: dict[str, Any] | None = None
    detail: str | None = None
    created_at: int
    started_at: int | None = None
    finished_at: int | None = None


__all__ = [
    "CollectionSummary",
    "CollectionStatusResponse",
    "DiffResponse",
    "IndexateRequest",
    "ReindexateRequest",
    "CleanupRequest",
    "CascadeRequest",
    "RunResponse",
    "RollbackResponse",
    "CleanupResponse",
    "JobResponse",
]
