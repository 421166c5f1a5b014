"""Service interfaces (Protocols) for PCON.

These protocols define the contracts that service implementations must follow.
This allows for easy swapping of implementations and better testability.
"""

import threading
from pathlib import Path
from typing import Protocol

from pcon.models.media import MediaInfo
from pcon.models.options import TranscodePreset
from pcon.models.plan import PlanEntry
from pcon.models.timeline import TimeRange


class IProgressReporter(Protocol):
    """Receives executor progress; the job is the usual implementation."""

    def begin_item(self, entry: PlanEntry, operation: str) -> None:
        """An entry is about to be processed."""
        ...

    def complete_item(self, entry: PlanEntry) -> None:
        """An entry has been handled (done, skipped or failed non-fatally)."""
        ...

    def add_error(self, file_path: str, message: str, is_fatal: bool) -> None:
        ...

    def add_warning(self, message: str) -> None:
        ...


class IEncoder(Protocol):
    """Interface for the external encoder (FFmpeg wrapper)."""

    def check_availability(self) -> str:
        """Return the encoder's version line.

        Raises:
            EncoderUnavailable: If the encoder cannot be run
        """
        ...

    def get_media_info(self, path: Path) -> MediaInfo:
        """Probe stream metadata of a file.

        Args:
            path: Path to the media file

        Returns:
            MediaInfo with duration, resolution, streams, etc.
        """
        ...

    def trim_media(
        self,
        input_path: Path,
        output_path: Path,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Stream-copy a time range of a file.

        Args:
            input_path: Path to input file
            output_path: Path for output file
            time_range: Source range to keep
            cancel_event: Kills the running process when set

        Returns:
            Path to the trimmed file
        """
        ...

    def transcode_media(
        self,
        input_path: Path,
        output_path: Path,
        preset: TranscodePreset,
        time_range: TimeRange | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Re-encode a file, optionally bounded to a time range.

        Args:
            input_path: Path to input file
            output_path: Path for output file
            preset: Encoding preset
            time_range: Source range to keep (whole file when None)
            cancel_event: Kills the running process when set

        Returns:
            Path to the transcoded file
        """
        ...
