"""Media-related data models."""

from pathlib import Path

from pydantic import BaseModel, Field

from pcon.models.project import MediaKind


class StreamInfo(BaseModel):
    """One stream reported by the encoder's probe."""

    index: int = 0
    codec_type: str = Field(..., description="video, audio, data, subtitle, ...")
    codec_name: str | None = None


class MediaInfo(BaseModel):
    """Media file metadata."""

    duration_ms: int = Field(..., description="Total duration in milliseconds")
    width: int | None = Field(None, description="Video width in pixels")
    height: int | None = Field(None, description="Video height in pixels")
    fps: float | None = Field(None, description="Frames per second")
    sample_rate: int | None = Field(None, description="Audio sample rate in Hz")
    format_name: str | None = None
    bit_rate: int | None = None
    streams: list[StreamInfo] = Field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Return duration in seconds."""
        return self.duration_ms / 1000.0

    @property
    def resolution(self) -> str | None:
        """Return resolution string (e.g., '1920x1080')."""
        if self.width and self.height:
            return f"{self.width}x{self.height}"
        return None

    @property
    def av_codecs(self) -> list[str]:
        """Codec names of the audio and video streams."""
        return [
            s.codec_name or ""
            for s in self.streams
            if s.codec_type in ("video", "audio")
        ]


class InventoryItem(BaseModel):
    """A main media item as seen by the inventory."""

    object_id: str
    path: Path
    file_name: str
    kind: MediaKind
    is_online: bool
    file_size: int = 0
    duration_ticks: int | None = None
    proxy_id: str | None = None
    proxy_path: Path | None = None
    proxy_online: bool = False
    proxy_size: int = 0
    sidecars: list[Path] = Field(default_factory=list)
    sidecar_size: int = 0
    bin_path: str | None = None
    project_item_name: str | None = None
    duplicate_of: str | None = Field(None, description="Earlier item with identical content")

    @property
    def has_proxy(self) -> bool:
        return self.proxy_id is not None


class Inventory(BaseModel):
    """Media inventory in document declaration order."""

    items: list[InventoryItem] = Field(default_factory=list)

    def get(self, media_id: str) -> InventoryItem | None:
        for item in self.items:
            if item.object_id == media_id:
                return item
        return None

    def as_dict(self) -> dict[str, InventoryItem]:
        return {item.object_id: item for item in self.items}

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def online_count(self) -> int:
        return sum(1 for item in self.items if item.is_online)

    @property
    def offline_count(self) -> int:
        return self.count - self.online_count

    @property
    def total_size(self) -> int:
        return sum(item.file_size for item in self.items)

    @property
    def duplicates(self) -> list[InventoryItem]:
        return [item for item in self.items if item.duplicate_of is not None]
