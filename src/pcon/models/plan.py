"""Operation plan produced by the interval optimizer."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from pcon.models.options import ConsolidationOptions, ProcessingMode
from pcon.models.project import MediaKind
from pcon.models.timeline import TimeRange, bounding_range


class MediaRole(str, Enum):
    """Whether an entry realizes a main file or its proxy."""

    MAIN = "main"
    PROXY = "proxy"


class PlanEntry(BaseModel):
    """One planned output file."""

    index: int
    media_id: str
    role: MediaRole = MediaRole.MAIN
    kind: MediaKind = MediaKind.UNKNOWN
    action: ProcessingMode
    source_path: Path
    destination: Path
    intervals: list[TimeRange] = Field(
        default_factory=list, description="Source ranges this output must cover"
    )
    clip_ids: list[str] = Field(default_factory=list)
    is_online: bool = True
    source_size: int = 0
    source_duration_ticks: int | None = None
    estimated_bytes: int = 0
    sidecars: list[Path] = Field(default_factory=list)
    # filename metadata
    base_name: str = ""
    name_suffix: str = ""
    unique_index: int | None = None

    @property
    def span(self) -> TimeRange | None:
        """Range of the source realized by this output, ``None`` for whole files."""
        if self.action not in (ProcessingMode.TRIM, ProcessingMode.TRANSCODE):
            return None
        return bounding_range(self.intervals)

    @property
    def offset_ticks(self) -> int:
        """Source time that becomes zero in the output file."""
        span = self.span
        return span.start_ticks if span is not None else 0

    @property
    def writes_file(self) -> bool:
        return self.action is not ProcessingMode.NO_PROCESS


class OutcomeStatus(str, Enum):
    """How a plan entry ended."""

    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"


class EntryOutcome(BaseModel):
    """Result of executing one plan entry."""

    index: int
    status: OutcomeStatus = OutcomeStatus.PENDING
    output_path: Path | None = Field(None, description="File actually written")
    action: ProcessingMode | None = Field(None, description="Action actually performed")
    output_bytes: int = 0
    message: str | None = None

    @property
    def realized(self) -> bool:
        return self.status is OutcomeStatus.DONE


class OperationPlan(BaseModel):
    """Everything a consolidation run will do."""

    options: ConsolidationOptions
    output_root: Path
    entries: list[PlanEntry] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def files_total(self) -> int:
        return len(self.entries)

    @property
    def bytes_total(self) -> int:
        return sum(e.estimated_bytes for e in self.entries)

    @property
    def media_dir(self) -> Path:
        return self.output_root / "Media"

    @property
    def proxy_dir(self) -> Path:
        return self.output_root / "Proxy"

    def path_mapping(self) -> dict[str, str]:
        """Source path to destination path for every file-writing entry."""
        mapping: dict[str, str] = {}
        for entry in self.entries:
            if entry.writes_file:
                mapping.setdefault(str(entry.source_path), str(entry.destination))
        return mapping
