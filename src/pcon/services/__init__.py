"""Services module for PCON."""

from pcon.services.analyzer import SequenceAnalyzer
from pcon.services.executor import ExecutionReport, MediaProcessingExecutor
from pcon.services.interfaces import IEncoder, IProgressReporter
from pcon.services.inventory import MediaInventory, format_file_size
from pcon.services.media import FFmpegService
from pcon.services.optimizer import IntervalOptimizer
from pcon.services.project_parser import ProjectParser

__all__ = [
    "IEncoder",
    "IProgressReporter",
    "ExecutionReport",
    "FFmpegService",
    "IntervalOptimizer",
    "MediaInventory",
    "MediaProcessingExecutor",
    "ProjectParser",
    "SequenceAnalyzer",
    "format_file_size",
]
