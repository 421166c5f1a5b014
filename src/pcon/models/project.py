"""Typed project graph built from the object arena."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from pcon.models.graph import DanglingReference, ObjectArena
from pcon.models.timeline import FrameRate, TimeRange


class MediaKind(str, Enum):
    """Declared kind of a media item."""

    VIDEO = "video"
    AUDIO = "audio"
    IMAGE = "image"
    RAW = "raw"
    GRAPHICS = "graphics"
    UNKNOWN = "unknown"

    @classmethod
    def from_extension(cls, ext: str) -> "MediaKind":
        return _EXTENSION_KINDS.get(ext.lower().lstrip("."), cls.UNKNOWN)

    @property
    def is_time_based(self) -> bool:
        """Whether a stream of this kind can be bounded to a time range."""
        return self in (MediaKind.VIDEO, MediaKind.AUDIO)


_EXTENSION_KINDS: dict[str, MediaKind] = {
    **dict.fromkeys(
        ["mp4", "mov", "avi", "mxf", "mkv", "wmv", "m4v", "webm"], MediaKind.VIDEO
    ),
    **dict.fromkeys(
        ["wav", "mp3", "aac", "aif", "aiff", "flac", "ogg", "m4a"], MediaKind.AUDIO
    ),
    **dict.fromkeys(
        ["jpg", "jpeg", "png", "tiff", "tif", "bmp", "gif", "psd", "exr", "dpx"],
        MediaKind.IMAGE,
    ),
    **dict.fromkeys(["r3d", "braw"], MediaKind.RAW),
    **dict.fromkeys(["mogrt", "aep", "aegraphic"], MediaKind.GRAPHICS),
}


class MediaItem(BaseModel):
    """A file referenced by the project."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    path: Path
    title: str | None = None
    kind: MediaKind = MediaKind.UNKNOWN
    duration_ticks: int | None = Field(None, ge=0, description="Declared duration")
    frame_rate: FrameRate | None = None
    proxy_id: str | None = Field(None, description="Media id of the linked proxy")
    is_proxy: bool = Field(False, description="This item is another item's proxy")

    @property
    def file_name(self) -> str:
        return self.path.name


class Bin(BaseModel):
    """A folder in the project panel."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str
    parent_id: str | None = None
    path: str = Field("", description="Full bin path, e.g. 'Footage/Raw/Camera A'")
    is_root: bool = False


class ProjectItem(BaseModel):
    """A clip in the project panel and the media it wraps."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str
    bin_id: str | None = None
    media_ids: tuple[str, ...] = ()


class ClipKind(str, Enum):
    """What a timeline clip plays."""

    MEDIA = "media"
    NESTED = "nested"
    MULTICAM = "multicam"
    EMPTY = "empty"


class Clip(BaseModel):
    """A track item on a sequence timeline."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str = ""
    sequence_id: str
    track_id: str
    is_video: bool = True
    position: TimeRange = Field(..., description="Range on the sequence timeline")
    source: TimeRange = Field(..., description="Range in source time")
    kind: ClipKind = ClipKind.EMPTY
    media_id: str | None = None
    sequence_ref: str | None = Field(None, description="Nested or multicam source sequence")
    selected_angle: int = 0
    source_clip_id: str | None = Field(None, description="Object holding in/out points")
    media_source_id: str | None = Field(None, description="Object holding the media ref")


class Track(BaseModel):
    """An ordered list of clips."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    index: int
    is_video: bool = True
    clips: tuple[Clip, ...] = ()


class Sequence(BaseModel):
    """A timeline."""

    model_config = ConfigDict(frozen=True)

    object_id: str
    name: str
    duration_ticks: int = 0
    frame_rate: FrameRate = Field(default_factory=FrameRate)
    video_tracks: tuple[Track, ...] = ()
    audio_tracks: tuple[Track, ...] = ()

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self.video_tracks + self.audio_tracks

    def iter_clips(self):
        for track in self.tracks:
            yield from track.clips

    @property
    def nested_sequence_ids(self) -> list[str]:
        """Distinct sequences used as nested or multicam clips, in order."""
        seen: dict[str, None] = {}
        for clip in self.iter_clips():
            if clip.sequence_ref is not None:
                seen.setdefault(clip.sequence_ref, None)
        return list(seen)


class ProjectGraph(BaseModel):
    """Parsed project: typed nodes keyed by identifier, plus the raw arena.

    Built once per parse and treated as read-only afterwards.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    file_path: Path
    name: str
    version: int = 0
    arena: ObjectArena
    sequences: dict[str, Sequence] = Field(default_factory=dict)
    media: dict[str, MediaItem] = Field(default_factory=dict)
    bins: dict[str, Bin] = Field(default_factory=dict)
    project_items: dict[str, ProjectItem] = Field(default_factory=dict)
    unresolved: tuple[DanglingReference, ...] = ()

    def get_sequence(self, sequence_id: str) -> Sequence | None:
        return self.sequences.get(sequence_id)

    def get_media(self, media_id: str) -> MediaItem | None:
        return self.media.get(media_id)

    def main_media(self) -> list[MediaItem]:
        """Media that are not somebody's proxy, in declaration order."""
        return [m for m in self.media.values() if not m.is_proxy]

    def project_item_for_media(self, media_id: str) -> ProjectItem | None:
        for item in self.project_items.values():
            if media_id in item.media_ids:
                return item
        return None

    def bin_path_for_media(self, media_id: str) -> str | None:
        item = self.project_item_for_media(media_id)
        if item is None or item.bin_id is None:
            return None
        bin_ = self.bins.get(item.bin_id)
        if bin_ is None or bin_.is_root:
            return None
        return bin_.path or None

    def user_bins(self) -> list[Bin]:
        return [b for b in self.bins.values() if not b.is_root]

    def all_clips(self) -> list[Clip]:
        return [clip for seq in self.sequences.values() for clip in seq.iter_clips()]
