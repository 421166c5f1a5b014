"""Health check endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from pcon.api.deps import get_engine
from pcon.api.schemas import FFmpegResponse
from pcon.engine import ConsolidationEngine

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return the health status of the application."""
    from pcon import __version__

    return HealthResponse(status="healthy", version=__version__)


@router.get("/api/v1/ffmpeg", response_model=FFmpegResponse)
def check_ffmpeg(engine: ConsolidationEngine = Depends(get_engine)) -> FFmpegResponse:
    """Encoder availability; 503 when it cannot be run."""
    return FFmpegResponse(available=True, version=engine.check_ffmpeg())
