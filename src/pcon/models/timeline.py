"""Time ranges in Premiere ticks."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Premiere's time base
TICKS_PER_SECOND = 254_016_000_000

# 23.976 fps, Premiere's default sequence rate
DEFAULT_TICKS_PER_FRAME = TICKS_PER_SECOND * 1001 // 24000


def ticks_to_seconds(ticks: int) -> float:
    """Convert ticks to seconds."""
    return ticks / TICKS_PER_SECOND


def seconds_to_ticks(seconds: float) -> int:
    """Convert seconds to the nearest tick."""
    return round(seconds * TICKS_PER_SECOND)


class FrameRate(BaseModel):
    """Frame rate stored the way Premiere does: ticks per frame."""

    model_config = ConfigDict(frozen=True)

    ticks_per_frame: int = Field(DEFAULT_TICKS_PER_FRAME, gt=0)

    @property
    def fps(self) -> float:
        return TICKS_PER_SECOND / self.ticks_per_frame

    def frames_to_ticks(self, frames: int) -> int:
        return frames * self.ticks_per_frame

    def ticks_to_frames(self, ticks: int) -> int:
        return ticks // self.ticks_per_frame


class TimeRange(BaseModel):
    """Half-open range ``[start_ticks, end_ticks)``."""

    model_config = ConfigDict(frozen=True)

    start_ticks: int = Field(..., ge=0, description="Inclusive start")
    end_ticks: int = Field(..., ge=0, description="Exclusive end")

    @model_validator(mode="after")
    def validate_range(self) -> "TimeRange":
        """Ensure end is not before start."""
        if self.end_ticks < self.start_ticks:
            raise ValueError("end_ticks must not be less than start_ticks")
        return self

    @classmethod
    def from_bounds(cls, a: int, b: int) -> "TimeRange":
        """Build a range from two bounds in any order, flooring at zero."""
        lo, hi = sorted((a, b))
        return cls(start_ticks=max(lo, 0), end_ticks=max(hi, 0))

    @property
    def duration_ticks(self) -> int:
        return self.end_ticks - self.start_ticks

    @property
    def duration_seconds(self) -> float:
        return ticks_to_seconds(self.duration_ticks)

    @property
    def is_empty(self) -> bool:
        return self.end_ticks == self.start_ticks

    def to_seconds(self) -> tuple[float, float]:
        """Return ``(start, end)`` in seconds."""
        return ticks_to_seconds(self.start_ticks), ticks_to_seconds(self.end_ticks)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start_ticks < other.end_ticks and other.start_ticks < self.end_ticks

    def contains_range(self, other: "TimeRange") -> bool:
        """Check if ``other`` lies entirely inside this range."""
        return self.start_ticks <= other.start_ticks and other.end_ticks <= self.end_ticks

    def overlap_ticks(self, other: "TimeRange") -> int:
        """Length of the intersection, zero when disjoint."""
        return max(0, min(self.end_ticks, other.end_ticks) - max(self.start_ticks, other.start_ticks))

    def expand(self, handle_ticks: int, max_ticks: int | None = None) -> "TimeRange":
        """Pad both ends by ``handle_ticks`` and clamp into ``[0, max_ticks)``."""
        start = max(self.start_ticks - handle_ticks, 0)
        end = self.end_ticks + handle_ticks
        if max_ticks is not None:
            end = min(end, max_ticks)
            start = min(start, max_ticks)
        return TimeRange(start_ticks=start, end_ticks=max(end, start))

    def merge_with(self, other: "TimeRange", gap_tolerance: int = 0) -> "TimeRange | None":
        """Union of two ranges if they overlap, touch, or sit within ``gap_tolerance``."""
        if (
            self.end_ticks + gap_tolerance >= other.start_ticks
            and other.end_ticks + gap_tolerance >= self.start_ticks
        ):
            return TimeRange(
                start_ticks=min(self.start_ticks, other.start_ticks),
                end_ticks=max(self.end_ticks, other.end_ticks),
            )
        return None


def merge_ranges(ranges: list[TimeRange], gap_tolerance: int = 0) -> list[TimeRange]:
    """Sort by start and merge into the minimal covering set."""
    if not ranges:
        return []
    ordered = sorted(ranges, key=lambda r: (r.start_ticks, r.end_ticks))
    merged = [ordered[0]]
    for current in ordered[1:]:
        combined = merged[-1].merge_with(current, gap_tolerance)
        if combined is None:
            merged.append(current)
        else:
            merged[-1] = combined
    return merged


def bounding_range(ranges: list[TimeRange]) -> TimeRange | None:
    """Outer bound of all ranges."""
    if not ranges:
        return None
    return TimeRange(
        start_ticks=min(r.start_ticks for r in ranges),
        end_ticks=max(r.end_ticks for r in ranges),
    )
