"""Read-only views returned by the engine's query operations."""

from pydantic import BaseModel, Field

from pcon.models.media import MediaInfo


class ProjectInfo(BaseModel):
    name: str
    file_path: str
    version: int = 0
    sequence_count: int = 0
    media_count: int = 0
    bin_count: int = 0
    unresolved_count: int = Field(0, description="Dangling references found while parsing")


class SequenceInfo(BaseModel):
    object_id: str
    name: str
    duration_seconds: float
    frame_rate: float
    video_track_count: int
    audio_track_count: int
    nested_count: int = Field(0, description="Distinct nested or multicam sequences used")


class MediaItemInfo(BaseModel):
    object_id: str
    file_path: str
    file_name: str
    file_size: int
    file_size_formatted: str
    is_online: bool
    media_type: str
    has_proxy: bool
    bin_path: str | None = None
    proxy_path: str | None = None
    duplicate_of: str | None = None


class UsedMediaInfo(BaseModel):
    object_id: str
    file_name: str
    usage_count: int
    time_range_seconds: tuple[float, float] = Field(..., description="Outer bound of usage")
    ranges_seconds: list[tuple[float, float]] = Field(
        default_factory=list, description="Merged usage intervals"
    )
    sequences: list[str] = Field(default_factory=list)


class UsageSummary(BaseModel):
    used_count: int
    unused_count: int
    used_size: int
    unused_size: int
    used_media: list[UsedMediaInfo] = Field(default_factory=list)
    unused_media: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class OutputPathCheck(BaseModel):
    path: str
    is_valid: bool
    exists: bool
    message: str = ""


class MediaMetadata(BaseModel):
    file_path: str
    info: MediaInfo
    lossless_trimmable: bool
