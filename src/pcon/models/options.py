"""Consolidation options."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class ProcessingMode(str, Enum):
    """What happens to each planned output file."""

    TRIM = "trim"
    TRANSCODE = "transcode"
    COPY = "copy"
    NO_PROCESS = "no_process"


class TranscodePreset(str, Enum):
    """Re-encode targets."""

    PRORES_422_LT = "prores422lt"
    PRORES_422 = "prores422"
    PRORES_422_HQ = "prores422hq"
    PRORES_4444 = "prores4444"
    DNXHD = "dnxhd"
    DNXHR = "dnxhr"
    H264_MEDIUM = "h264medium"
    H264_HIGH = "h264high"
    H265_MEDIUM = "h265medium"
    H265_HIGH = "h265high"

    @property
    def extension(self) -> str:
        """Container extension for this preset."""
        if self in (
            TranscodePreset.H264_MEDIUM,
            TranscodePreset.H264_HIGH,
            TranscodePreset.H265_MEDIUM,
            TranscodePreset.H265_HIGH,
        ):
            return ".mp4"
        return ".mov"


class OptimizationMode(str, Enum):
    """How usage intervals map to output files."""

    KEEP_FILES = "keep_files"
    MINIMIZE = "minimize"
    UNIQUE_CLIPS = "unique_clips"


class FolderStructure(str, Enum):
    """Destination layout under the output root."""

    FLAT = "flat"
    BINS = "bins"
    ORIGINAL = "original"


class ProxyMode(str, Enum):
    """Treatment of proxy media."""

    BOTH = "both"
    PROXY_ONLY = "proxy_only"
    MAIN_ONLY = "main_only"
    PRESERVE = "preserve"


class LosslessFallback(str, Enum):
    """Policy when a trim target cannot be stream-copied."""

    TRANSCODE = "transcode"
    ERROR = "error"


class ConsolidationOptions(BaseModel):
    """Options for a consolidation run."""

    output_path: Path = Field(..., description="Output root directory")
    sequences: list[str] = Field(
        default_factory=list, description="Selected sequence ids (empty means all)"
    )
    processing_mode: ProcessingMode = ProcessingMode.TRIM
    transcode_preset: TranscodePreset | None = None
    optimization_mode: OptimizationMode = OptimizationMode.KEEP_FILES
    folder_structure: FolderStructure = FolderStructure.FLAT
    proxy_mode: ProxyMode = ProxyMode.BOTH
    handle_frames: int = Field(0, ge=0, description="Extra frames kept on both ends")
    include_all_multicam_angles: bool = True
    generate_unique_filenames: bool = True
    use_project_item_names: bool = False
    add_frame_range_to_filename: bool = False
    copy_sidecar_files: bool = True
    skip_offline_media: bool = True
    lossless_fallback: LosslessFallback | None = Field(
        None, description="Overrides the configured fallback policy"
    )

    def preset_or(self, default: TranscodePreset) -> TranscodePreset:
        return self.transcode_preset or default
