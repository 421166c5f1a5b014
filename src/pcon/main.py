"""Main entry point for the PCON server."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pcon.api.deps import init_engine, shutdown_engine
from pcon.api.routes import consolidations, health, media, projects
from pcon.config import settings
from pcon.errors import (
    CorruptArchive,
    CycleDetected,
    EncoderUnavailable,
    JobNotFoundError,
    MalformedDocument,
    MediaNotFoundError,
    PconError,
    ProjectNotFoundError,
    SequenceNotFoundError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[PconError], int] = {
    ProjectNotFoundError: 404,
    MediaNotFoundError: 404,
    JobNotFoundError: 404,
    SequenceNotFoundError: 404,
    CorruptArchive: 422,
    MalformedDocument: 422,
    CycleDetected: 422,
    EncoderUnavailable: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize resources on startup, clean up on shutdown."""
    init_engine()
    yield
    shutdown_engine()


async def pcon_error_handler(request: Request, exc: PconError) -> JSONResponse:
    status_code = 500
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            status_code = ERROR_STATUS_CODES[error_type]
            break
    if status_code == 500:
        logger.error("Unhandled engine error on %s: %s", request.url.path, exc)
    body: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, CycleDetected):
        body["chain"] = exc.chain
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="PCON - Project Consolidator",
        description="Consolidate Premiere Pro projects down to the media their sequences use",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(PconError, pcon_error_handler)

    # Include API routes
    app.include_router(health.router)
    app.include_router(projects.router)
    app.include_router(consolidations.router)
    app.include_router(media.router)

    return app


app = create_app()


def main() -> None:
    """Run the application."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "pcon.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
