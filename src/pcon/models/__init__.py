"""Data models for PCON."""

from pcon.models.graph import DanglingReference, ObjectArena, XmlObject
from pcon.models.media import Inventory, InventoryItem, MediaInfo, StreamInfo
from pcon.models.options import (
    ConsolidationOptions,
    FolderStructure,
    LosslessFallback,
    OptimizationMode,
    ProcessingMode,
    ProxyMode,
    TranscodePreset,
)
from pcon.models.plan import MediaRole, OperationPlan, PlanEntry
from pcon.models.project import (
    Bin,
    Clip,
    ClipKind,
    MediaItem,
    MediaKind,
    ProjectGraph,
    ProjectItem,
    Sequence,
    Track,
)
from pcon.models.timeline import TICKS_PER_SECOND, FrameRate, TimeRange
from pcon.models.usage import MediaUsage, UsageInterval, UsageResult

__all__ = [
    # Graph
    "DanglingReference",
    "ObjectArena",
    "XmlObject",
    # Timeline
    "TICKS_PER_SECOND",
    "FrameRate",
    "TimeRange",
    # Project
    "Bin",
    "Clip",
    "ClipKind",
    "MediaItem",
    "MediaKind",
    "ProjectGraph",
    "ProjectItem",
    "Sequence",
    "Track",
    # Media
    "Inventory",
    "InventoryItem",
    "MediaInfo",
    "StreamInfo",
    # Usage
    "MediaUsage",
    "UsageInterval",
    "UsageResult",
    # Options
    "ConsolidationOptions",
    "FolderStructure",
    "LosslessFallback",
    "OptimizationMode",
    "ProcessingMode",
    "ProxyMode",
    "TranscodePreset",
    # Plan
    "MediaRole",
    "OperationPlan",
    "PlanEntry",
]
