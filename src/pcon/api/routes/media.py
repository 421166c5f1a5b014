"""Media info endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from pcon.api.deps import get_engine
from pcon.engine import ConsolidationEngine
from pcon.models.summary import MediaMetadata

router = APIRouter(prefix="/api/v1/media", tags=["media"])


@router.get("/info", response_model=MediaMetadata)
def get_media_info(
    path: str = Query(..., description="Path to media file"),
    engine: ConsolidationEngine = Depends(get_engine),
) -> MediaMetadata:
    return engine.get_media_metadata(path)
