"""Media usage computed from sequence timelines."""

from pydantic import BaseModel, ConfigDict, Field

from pcon.models.timeline import TimeRange, bounding_range


class UsageInterval(BaseModel):
    """Source range of one media used by one timeline clip, handles applied."""

    model_config = ConfigDict(frozen=True)

    media_id: str
    range: TimeRange
    sequence_id: str = Field(..., description="Sequence directly containing the clip")
    clip_id: str
    is_multicam_angle: bool = False


class MediaUsage(BaseModel):
    """Aggregated usage of a single media item."""

    media_id: str
    file_name: str = ""
    file_size: int = 0
    intervals: list[UsageInterval] = Field(default_factory=list)
    merged: list[TimeRange] = Field(default_factory=list)
    sequence_ids: list[str] = Field(default_factory=list)
    is_multicam_angle: bool = False

    @property
    def usage_count(self) -> int:
        """Number of contributing clips."""
        return len(self.intervals)

    @property
    def span(self) -> TimeRange | None:
        """Outer bound of the merged intervals."""
        return bounding_range(self.merged)


class UsageResult(BaseModel):
    """Outcome of analysing a set of sequences."""

    sequence_ids: list[str] = Field(default_factory=list)
    analyzed_sequence_ids: list[str] = Field(
        default_factory=list, description="Selected plus every nested sequence walked"
    )
    handle_frames: int = 0
    include_all_multicam_angles: bool = True
    used: dict[str, MediaUsage] = Field(default_factory=dict)
    unused_ids: list[str] = Field(default_factory=list)
    unused_size: int = 0
    warnings: list[str] = Field(default_factory=list)

    @property
    def used_count(self) -> int:
        return len(self.used)

    @property
    def unused_count(self) -> int:
        return len(self.unused_ids)

    @property
    def used_size(self) -> int:
        return sum(u.file_size for u in self.used.values())

    def get(self, media_id: str) -> MediaUsage | None:
        return self.used.get(media_id)
