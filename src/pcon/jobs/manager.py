"""Job manager with in-memory storage and background execution."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path

from pcon.config import settings
from pcon.errors import (
    CancellationRequested,
    ItemError,
    JobNotFoundError,
    OutputWriteFailure,
    PconError,
)
from pcon.export.manifest import save_manifest
from pcon.export.project import ProjectRewriter
from pcon.jobs.models import (
    ConsolidationProgress,
    ConsolidationResult,
    ConsolidationStatus,
    Job,
)
from pcon.models.options import ConsolidationOptions, LosslessFallback, TranscodePreset
from pcon.models.plan import OperationPlan
from pcon.models.project import ProjectGraph
from pcon.services.executor import ExecutionReport, MediaProcessingExecutor
from pcon.services.interfaces import IEncoder
from pcon.services.optimizer import plan_consolidation

logger = logging.getLogger(__name__)


class JobManager:
    """Owns the registry of consolidation jobs and the workers running them.

    Jobs are stored in-memory (dict). Each job runs on a bounded thread pool, so the
    caller gets the job id back immediately and polls ``progress``. Terminal jobs are
    evicted lazily: ``linger_seconds`` after their final status was first read, or
    ``retention_seconds`` after they finished when nobody reads them.
    """

    def __init__(
        self,
        encoder: IEncoder,
        max_concurrent: int = 2,
        max_workers_per_job: int = 1,
        linger_seconds: float | None = None,
        retention_seconds: float | None = None,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self.encoder = encoder
        self.max_workers_per_job = max_workers_per_job
        self.linger_seconds = (
            settings.job_linger_seconds if linger_seconds is None else linger_seconds
        )
        self.retention_seconds = (
            settings.job_retention_seconds if retention_seconds is None else retention_seconds
        )
        self._exists = exists
        self._jobs: dict[str, Job] = {}
        self._futures: dict[str, Future] = {}
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(
            max_workers=max_concurrent, thread_name_prefix="pcon-job"
        )

    def create_job(
        self, graph: ProjectGraph, options: ConsolidationOptions
    ) -> Job:
        """Create a new job and schedule it for background execution.

        Args:
            graph: Parsed project to consolidate
            options: Consolidation options

        Returns:
            The created Job (status=Pending)
        """
        job = Job(project_path=graph.file_path, options=options)
        with self._lock:
            self._evict_expired()
            self._jobs[job.id] = job
            self._futures[job.id] = self._pool.submit(self._run_job, job, graph)
        logger.info("Job %s created for %s", job.id, graph.file_path.name)
        return job

    def get_job(self, job_id: str) -> Job:
        """Get a job by ID.

        Raises:
            JobNotFoundError: If the id is unknown or was evicted
        """
        with self._lock:
            self._evict_expired()
            job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def list_jobs(self) -> list[Job]:
        """List all jobs, most recent first."""
        with self._lock:
            self._evict_expired()
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def progress(self, job_id: str) -> ConsolidationProgress:
        return self.get_job(job_id).snapshot()

    def cancel(self, job_id: str) -> None:
        job = self.get_job(job_id)
        if job.request_cancel():
            logger.info("Cancellation requested for job %s", job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> ConsolidationProgress:
        """Block until the job's worker returns (mainly for tests and the CLI)."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeout:
                pass
        return self.get_job(job_id).progress

    def shutdown(self, wait: bool = True) -> None:
        """Cancel every live job and stop the workers."""
        with self._lock:
            jobs = list(self._jobs.values())
        for job in jobs:
            job.request_cancel()
        self._pool.shutdown(wait=wait)

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = []
        for job_id, job in self._jobs.items():
            if not job.status.is_terminal:
                continue
            read_at = job.first_read_at_monotonic
            finished_at = job.finished_at_monotonic or now
            if read_at is not None and now - read_at >= self.linger_seconds:
                expired.append(job_id)
            elif now - finished_at >= self.retention_seconds:
                expired.append(job_id)
        for job_id in expired:
            del self._jobs[job_id]
            self._futures.pop(job_id, None)
            logger.debug("Evicted job %s", job_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run_job(self, job: Job, graph: ProjectGraph) -> None:
        """Drive a job through the status state machine."""
        started = time.monotonic()
        try:
            self._execute(job, graph, started)
        except CancellationRequested:
            self._transition(job, ConsolidationStatus.CANCELLED)
        except ItemError as e:
            # executor and rewriter have already recorded the error
            logger.error("Job %s failed: %s", job.id, e)
            self._transition(job, ConsolidationStatus.FAILED)
        except PconError as e:
            logger.error("Job %s failed: %s", job.id, e)
            job.add_error(str(job.project_path), str(e), True)
            self._transition(job, ConsolidationStatus.FAILED)
        except Exception as e:
            logger.exception("Job %s failed", job.id)
            job.add_error(str(job.project_path), str(e), True)
            self._transition(job, ConsolidationStatus.FAILED)

    def _execute(self, job: Job, graph: ProjectGraph, started: float) -> None:
        options = job.options

        self._checkpoint(job)
        self._transition(job, ConsolidationStatus.ANALYZING)
        job.set_operation("Analyzing sequences...")
        plan = self._plan(graph, options)
        for warning in plan.warnings:
            job.add_warning(warning)
        job.set_totals(plan.files_total, plan.bytes_total)

        self._checkpoint(job)
        self._transition(job, ConsolidationStatus.PROCESSING)
        executor = MediaProcessingExecutor(
            encoder=self.encoder,
            lossless_fallback=options.lossless_fallback
            or LosslessFallback(settings.lossless_fallback),
            fallback_preset=options.preset_or(TranscodePreset(settings.fallback_preset)),
            max_workers=self.max_workers_per_job,
            exists=self._exists,
        )
        report = executor.run(plan, job, job.cancel_event)

        self._checkpoint(job)
        self._transition(job, ConsolidationStatus.WRITING_PROJECT)
        job.set_operation("Creating new project file...")
        result = self._write_project(job, graph, plan, report)
        result.duration_seconds = time.monotonic() - started

        job.result = result
        self._transition(job, ConsolidationStatus.COMPLETED)

    def _plan(self, graph: ProjectGraph, options: ConsolidationOptions) -> OperationPlan:
        return plan_consolidation(
            graph,
            options,
            fallback_preset=TranscodePreset(settings.fallback_preset),
            merge_gap_ticks=settings.merge_gap_ticks,
            exists=self._exists,
        )

    def _write_project(
        self,
        job: Job,
        graph: ProjectGraph,
        plan: OperationPlan,
        report: ExecutionReport,
    ) -> ConsolidationResult:
        try:
            rewrite = ProjectRewriter().rewrite(graph, plan, report.outcomes)
            manifest_path = save_manifest(graph.file_path, plan, report.outcomes)
        except OutputWriteFailure as e:
            job.add_error(e.file_path, e.message, True)
            raise
        except OSError as e:
            job.add_error(str(plan.output_root), str(e), True)
            raise OutputWriteFailure(str(plan.output_root), str(e)) from e

        for warning in rewrite.warnings:
            job.add_warning(warning)

        original_size = sum(
            plan.entries[o.index].source_size for o in report.realized
        )
        return ConsolidationResult(
            output_project_path=str(rewrite.project_path),
            manifest_path=str(manifest_path),
            original_size=original_size,
            final_size=report.output_bytes,
            path_mapping={
                str(plan.entries[o.index].source_path): str(o.output_path)
                for o in report.realized
                if o.output_path is not None
            },
        )

    @staticmethod
    def _checkpoint(job: Job) -> None:
        if job.cancel_requested:
            raise CancellationRequested(f"Job {job.id} cancelled")

    @staticmethod
    def _transition(job: Job, status: ConsolidationStatus) -> None:
        if job.set_status(status):
            logger.info("Job %s -> %s", job.id, status.value)
