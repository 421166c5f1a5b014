"""Request and response schemas for the PCON API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from pcon.jobs.models import ConsolidationProgress, Job
from pcon.models.options import ConsolidationOptions


# ------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------


class AnalyzeRequest(BaseModel):
    project_path: str = Field(..., description="Path to the .prproj file")
    sequence_ids: list[str] = Field(
        default_factory=list, description="Sequences to analyze (empty means all)"
    )
    handle_frames: int = Field(0, ge=0, description="Extra frames kept on both ends")
    include_all_multicam: bool = Field(True, description="Count every multicam angle")


class ConsolidationRequest(BaseModel):
    project_path: str = Field(..., description="Path to the .prproj file")
    options: ConsolidationOptions


# ------------------------------------------------------------------
# Responses
# ------------------------------------------------------------------


class EstimateResponse(BaseModel):
    bytes: int
    formatted: str


class JobCreateResponse(BaseModel):
    job_id: str
    status: str


class ProcessingErrorResponse(BaseModel):
    file_path: str
    error_message: str
    is_fatal: bool = False


class ProgressResponse(BaseModel):
    job_id: str
    status: str
    current_file: str | None = None
    current_operation: str | None = None
    files_processed: int = 0
    files_total: int = 0
    bytes_processed: int = 0
    bytes_total: int = 0
    errors: list[ProcessingErrorResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @classmethod
    def from_progress(cls, progress: ConsolidationProgress) -> ProgressResponse:
        return cls(
            job_id=progress.job_id,
            status=progress.status.value,
            current_file=progress.current_file,
            current_operation=progress.current_operation,
            files_processed=progress.files_processed,
            files_total=progress.files_total,
            bytes_processed=progress.bytes_processed,
            bytes_total=progress.bytes_total,
            errors=[
                ProcessingErrorResponse(
                    file_path=e.file_path, error_message=e.error_message, is_fatal=e.is_fatal
                )
                for e in progress.errors
            ],
            warnings=list(progress.warnings),
        )


class JobListItem(BaseModel):
    job_id: str
    project_path: str
    status: str
    created_at: datetime
    completed_at: datetime | None = None
    output_project_path: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobListItem:
        return cls(
            job_id=job.id,
            project_path=str(job.project_path),
            status=job.status.value,
            created_at=job.created_at,
            completed_at=job.completed_at,
            output_project_path=job.result.output_project_path if job.result else None,
        )


class FFmpegResponse(BaseModel):
    available: bool
    version: str
