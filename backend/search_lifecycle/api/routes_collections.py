"""Collection lifecycle routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from search_lifecycle.api.dependencies import get_orchestrator
from search_lifecycle.core.errors import (
    ConfirmationRequired,
    LifecycleError,
    PopulationFailed,
    RollbackUnavailable,
    SchemaMissingOrDrifted,
    TransportError,
    UnknownCollection,
    ValidationError,
)
from search_lifecycle.lifecycle import LifecycleOrchestrator
from search_lifecycle.models.dto import (
    CascadeRequest,
    CleanupRequest,
    CleanupResponse,
    CollectionStatusResponse,
    CollectionSummary,
    DiffResponse,
    IndexateRequest,
    ReindexateRequest,
    RollbackResponse,
    RunResponse,
)

router = APIRouter()

_STATUS_CODES: tuple[tuple[type[LifecycleError], int], ...] = (
    (UnknownCollection, 404),
    (ConfirmationRequired, 400),
    (ValidationError, 422),
    (SchemaMissingOrDrifted, 409),
    (RollbackUnavailable, 409),
    (PopulationFailed, 502),
    (TransportError, 502),
)


def _http_error(exc: LifecycleError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@router.get("", response_model=list[CollectionSummary], summary="List registered collections")
def list_collections(orchestrator: LifecycleOrchestrator = Depends(get_orchestrator)) -> list[CollectionSummary]:
    summaries: list[CollectionSummary] = []
    for name in orchestrator.registry.names():
        try:
            summaries.append(
                CollectionSummary(
                    name=name,
                    alias_target=orchestrator.client.resolve_alias(name),
                    generations=orchestrator.schema.generations(name),
                )
            )
        except LifecycleError as exc:
            raise _http_error(exc) from exc
    return summaries


@router.get("/{name}", response_model=CollectionStatusResponse, summary="Live status of a collection")
def collection_status(
    name: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> CollectionStatusResponse:
    try:
        status = orchestrator.status(name)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return CollectionStatusResponse(**status.to_dict())


@router.get("/{name}/diff", response_model=DiffResponse, summary="Schema diff against the live collection")
def collection_diff(
    name: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> DiffResponse:
    try:
        status = orchestrator.status(name)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return DiffResponse(
        collection=name,
        status=status.diff.status,
        diff=status.diff.to_dict(),
        pretty=status.diff.pretty(),
    )


@router.post("/{name}/indexate", response_model=RunResponse, summary="Full or partial indexation")
def indexate(
    name: str,
    request: IndexateRequest | None = None,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> RunResponse:
    partitions = request.partitions if request else None
    try:
        report = orchestrator.indexate(name, partitions=partitions)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return RunResponse(**report.to_dict())


@router.post("/{name}/reindexate", response_model=RunResponse, summary="Drop and rebuild a collection")
def reindexate(
    name: str,
    request: ReindexateRequest,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> RunResponse:
    try:
        report = orchestrator.reindexate(name, confirm=request.confirm)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return RunResponse(**report.to_dict())


@router.post("/{name}/rollback", response_model=RollbackResponse, summary="Point the alias at the previous generation")
def rollback(
    name: str,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> RollbackResponse:
    try:
        result = orchestrator.rollback(name)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return RollbackResponse(**result.to_dict())


@router.post("/{name}/cleanup", response_model=CleanupResponse, summary="Delete stale documents")
def cleanup(
    name: str,
    request: CleanupRequest | None = None,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> CleanupResponse:
    request = request or CleanupRequest()
    try:
        result = orchestrator.cleanup(name, partition=request.partition, dry_run=request.dry_run)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return CleanupResponse(**result.to_dict())


@router.post("/{name}/cascade", summary="Reindex collections depending on this one")
def cascade(
    name: str,
    request: CascadeRequest | None = None,
    orchestrator: LifecycleOrchestrator = Depends(get_orchestrator),
) -> dict:
    request = request or CascadeRequest()
    try:
        orchestrator.registry.require(name)
        report = orchestrator.cascade(name, ids=request.ids, context=request.context)
    except LifecycleError as exc:
        raise _http_error(exc) from exc
    return report.to_dict()


__all__ = ["router"]
