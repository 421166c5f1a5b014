"""Job management for PCON."""

from pcon.jobs.manager import JobManager
from pcon.jobs.models import (
    ConsolidationProgress,
    ConsolidationResult,
    ConsolidationStatus,
    Job,
    ProcessingError,
)

__all__ = [
    "ConsolidationProgress",
    "ConsolidationResult",
    "ConsolidationStatus",
    "Job",
    "JobManager",
    "ProcessingError",
]
