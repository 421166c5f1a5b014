"""Job domain models."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from uuid import uuid4

from pcon.models.options import ConsolidationOptions
from pcon.models.plan import PlanEntry


class ConsolidationStatus(str, Enum):
    """Status of a consolidation job."""

    PENDING = "Pending"
    ANALYZING = "Analyzing"
    PROCESSING = "Processing"
    WRITING_PROJECT = "WritingProject"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ConsolidationStatus.COMPLETED,
            ConsolidationStatus.CANCELLED,
            ConsolidationStatus.FAILED,
        )


_FORWARD_ORDER = [
    ConsolidationStatus.PENDING,
    ConsolidationStatus.ANALYZING,
    ConsolidationStatus.PROCESSING,
    ConsolidationStatus.WRITING_PROJECT,
    ConsolidationStatus.COMPLETED,
]


def can_transition(current: ConsolidationStatus, new: ConsolidationStatus) -> bool:
    """Forward moves along the pipeline, or Cancelled/Failed from any live state."""
    if current.is_terminal:
        return False
    if new in (ConsolidationStatus.CANCELLED, ConsolidationStatus.FAILED):
        return True
    return _FORWARD_ORDER.index(new) > _FORWARD_ORDER.index(current)


@dataclass(frozen=True)
class ProcessingError:
    """An error recorded against a job."""

    file_path: str
    error_message: str
    is_fatal: bool = False


@dataclass(frozen=True)
class ConsolidationProgress:
    """Immutable progress snapshot; a new one is published on every update."""

    job_id: str
    status: ConsolidationStatus = ConsolidationStatus.PENDING
    current_file: str | None = None
    current_operation: str | None = None
    files_processed: int = 0
    files_total: int = 0
    bytes_processed: int = 0
    bytes_total: int = 0
    errors: tuple[ProcessingError, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass
class ConsolidationResult:
    """Result of a completed consolidation."""

    output_project_path: str
    manifest_path: str | None = None
    original_size: int = 0
    final_size: int = 0
    duration_seconds: float = 0.0
    path_mapping: dict[str, str] = field(default_factory=dict)

    @property
    def bytes_saved(self) -> int:
        return max(self.original_size - self.final_size, 0)


@dataclass
class Job:
    """A consolidation run.

    Only the worker running the job writes to it. Readers call ``snapshot()`` and get
    the last published ``ConsolidationProgress``; every write replaces that object
    under the job's lock, so a reader never sees half an update.
    """

    project_path: Path
    options: ConsolidationOptions
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    result: ConsolidationResult | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)
    finished_at_monotonic: float | None = field(default=None, repr=False)
    first_read_at_monotonic: float | None = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _progress: ConsolidationProgress = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._progress = ConsolidationProgress(job_id=self.id)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConsolidationStatus:
        return self._progress.status

    @property
    def progress(self) -> ConsolidationProgress:
        """Current snapshot, without marking it read."""
        return self._progress

    def snapshot(self) -> ConsolidationProgress:
        """Current snapshot; records the first read of a terminal status."""
        progress = self._progress
        if progress.status.is_terminal and self.first_read_at_monotonic is None:
            self.first_read_at_monotonic = time.monotonic()
        return progress

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def request_cancel(self) -> bool:
        """Ask the worker to stop; returns False when the job already ended."""
        if self._progress.status.is_terminal:
            return False
        self.cancel_event.set()
        return True

    def set_status(self, status: ConsolidationStatus) -> bool:
        with self._lock:
            current = self._progress.status
            if not can_transition(current, status):
                return False
            updates: dict = {"status": status}
            if status.is_terminal:
                updates["current_file"] = None
                updates["current_operation"] = None
                self.completed_at = datetime.now(timezone.utc)
                self.finished_at_monotonic = time.monotonic()
            self._progress = replace(self._progress, **updates)
            return True

    def set_totals(self, files_total: int, bytes_total: int) -> None:
        self._publish(files_total=files_total, bytes_total=bytes_total)

    def set_operation(self, operation: str, current_file: str | None = None) -> None:
        self._publish(current_operation=operation, current_file=current_file)

    def begin_item(self, entry: PlanEntry, operation: str) -> None:
        self._publish(current_file=str(entry.source_path), current_operation=operation)

    def complete_item(self, entry: PlanEntry) -> None:
        with self._lock:
            if self._progress.status.is_terminal:
                return
            self._progress = replace(
                self._progress,
                files_processed=self._progress.files_processed + 1,
                bytes_processed=self._progress.bytes_processed + entry.estimated_bytes,
            )

    def add_error(self, file_path: str, message: str, is_fatal: bool) -> None:
        error = ProcessingError(file_path=file_path, error_message=message, is_fatal=is_fatal)
        with self._lock:
            if self._progress.status.is_terminal:
                return
            self._progress = replace(self._progress, errors=self._progress.errors + (error,))

    def add_warning(self, message: str) -> None:
        with self._lock:
            if self._progress.status.is_terminal:
                return
            self._progress = replace(self._progress, warnings=self._progress.warnings + (message,))

    def _publish(self, **updates) -> None:
        with self._lock:
            if self._progress.status.is_terminal:
                return
            self._progress = replace(self._progress, **updates)
