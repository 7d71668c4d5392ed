"""Administrative routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from search_lifecycle.api.dependencies import get_job_queue
from search_lifecycle.core.metrics import metrics_response
from search_lifecycle.indexer.jobs import BackgroundJobQueue
from search_lifecycle.models.dto import JobResponse
from search_lifecycle.utils.ids import id_kind

router = APIRouter()


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="Status of an asynchronous index job")
def job_status(job_id: str, queue: BackgroundJobQueue = Depends(get_job_queue)) -> JobResponse:
    if id_kind(job_id) != "job":
        raise HTTPException(status_code=400, detail=f"{job_id!r} is not a job id")
    status = queue.status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(**status)


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
