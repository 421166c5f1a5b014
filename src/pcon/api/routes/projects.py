"""Project query endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from pcon.api.deps import get_engine
from pcon.api.schemas import AnalyzeRequest, ConsolidationRequest, EstimateResponse
from pcon.engine import ConsolidationEngine
from pcon.models.summary import (
    MediaItemInfo,
    OutputPathCheck,
    ProjectInfo,
    SequenceInfo,
    UsageSummary,
)
from pcon.services.inventory import format_file_size

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


@router.get("/info", response_model=ProjectInfo)
def get_project_info(
    path: str = Query(..., description="Path to the .prproj file"),
    engine: ConsolidationEngine = Depends(get_engine),
) -> ProjectInfo:
    return engine.get_project_info(path)


@router.get("/sequences", response_model=list[SequenceInfo])
def get_sequences(
    path: str = Query(..., description="Path to the .prproj file"),
    engine: ConsolidationEngine = Depends(get_engine),
) -> list[SequenceInfo]:
    return engine.get_sequences(path)


@router.get("/media", response_model=list[MediaItemInfo])
def get_media_items(
    path: str = Query(..., description="Path to the .prproj file"),
    engine: ConsolidationEngine = Depends(get_engine),
) -> list[MediaItemInfo]:
    return engine.get_media_items(path)


@router.post("/analyze", response_model=UsageSummary)
def analyze_media_usage(
    req: AnalyzeRequest,
    engine: ConsolidationEngine = Depends(get_engine),
) -> UsageSummary:
    return engine.analyze_media_usage(
        req.project_path,
        sequence_ids=req.sequence_ids,
        handle_frames=req.handle_frames,
        include_all_multicam=req.include_all_multicam,
    )


@router.post("/estimate", response_model=EstimateResponse)
def estimate_output_size(
    req: ConsolidationRequest,
    engine: ConsolidationEngine = Depends(get_engine),
) -> EstimateResponse:
    size = engine.estimate_output_size(req.project_path, req.options)
    return EstimateResponse(bytes=size, formatted=format_file_size(size))


@router.get("/output-path", response_model=OutputPathCheck)
def validate_output_path(
    path: str = Query(..., description="Intended output directory"),
    engine: ConsolidationEngine = Depends(get_engine),
) -> OutputPathCheck:
    return engine.validate_output_path(path)
