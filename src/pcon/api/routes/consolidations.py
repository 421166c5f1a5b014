"""Consolidation job endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pcon.api.deps import get_engine
from pcon.api.schemas import (
    ConsolidationRequest,
    JobCreateResponse,
    JobListItem,
    ProgressResponse,
)
from pcon.engine import ConsolidationEngine

router = APIRouter(prefix="/api/v1/consolidations", tags=["consolidations"])


@router.post("", response_model=JobCreateResponse, status_code=202)
def start_consolidation(
    req: ConsolidationRequest,
    engine: ConsolidationEngine = Depends(get_engine),
) -> JobCreateResponse:
    job_id = engine.start_consolidation(req.project_path, req.options)
    progress = engine.jobs.get_job(job_id).progress
    return JobCreateResponse(job_id=job_id, status=progress.status.value)


@router.get("", response_model=list[JobListItem])
def list_consolidations(
    engine: ConsolidationEngine = Depends(get_engine),
) -> list[JobListItem]:
    return [JobListItem.from_job(job) for job in engine.jobs.list_jobs()]


@router.get("/{job_id}", response_model=ProgressResponse)
def get_consolidation_progress(
    job_id: str,
    engine: ConsolidationEngine = Depends(get_engine),
) -> ProgressResponse:
    return ProgressResponse.from_progress(engine.get_consolidation_progress(job_id))


@router.post("/{job_id}/cancel", response_model=ProgressResponse, status_code=202)
def cancel_consolidation(
    job_id: str,
    engine: ConsolidationEngine = Depends(get_engine),
) -> ProgressResponse:
    engine.cancel_consolidation(job_id)
    return ProgressResponse.from_progress(engine.jobs.get_job(job_id).progress)
