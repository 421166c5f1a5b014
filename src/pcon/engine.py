"""Consolidation engine: the operations exposed to the API and the CLI."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path

from pcon.config import settings
from pcon.errors import MediaNotFoundError, SequenceNotFoundError
from pcon.jobs.manager import JobManager
from pcon.jobs.models import ConsolidationProgress
from pcon.models.options import ConsolidationOptions, TranscodePreset
from pcon.models.project import ProjectGraph
from pcon.models.summary import (
    MediaItemInfo,
    MediaMetadata,
    OutputPathCheck,
    ProjectInfo,
    SequenceInfo,
    UsageSummary,
    UsedMediaInfo,
)
from pcon.models.timeline import ticks_to_seconds
from pcon.services.analyzer import SequenceAnalyzer
from pcon.services.interfaces import IEncoder
from pcon.services.inventory import MediaInventory, format_file_size
from pcon.services.media import FFmpegService, is_lossless_trimmable
from pcon.services.optimizer import plan_consolidation
from pcon.services.project_parser import ProjectParser

logger = logging.getLogger(__name__)


class ConsolidationEngine:
    """Entry point for every project query and consolidation run.

    Parsed projects are cached per path and re-parsed when the file's mtime or size
    changes. Query operations only read the cached graph, so they are safe to call
    while jobs are running.

    Args:
        encoder: Encoder used by jobs and the metadata probe (FFmpegService by default)
        job_manager: Registry running consolidation jobs (created from settings by default)
        exists: Online check for media paths (defaults to ``Path.is_file``)
    """

    def __init__(
        self,
        encoder: IEncoder | None = None,
        job_manager: JobManager | None = None,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self.encoder = encoder or FFmpegService()
        self.jobs = job_manager or JobManager(
            encoder=self.encoder,
            max_concurrent=settings.max_concurrent_jobs,
            max_workers_per_job=settings.max_workers_per_job,
            exists=exists,
        )
        self._exists = exists
        self._parser = ProjectParser()
        self._cache: dict[Path, tuple[int, int, ProjectGraph]] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def open_project(self, path: str | Path) -> ProjectGraph:
        """Parse a project, reusing the cached graph while the file is unchanged."""
        path = Path(path).expanduser().resolve()
        try:
            stat = path.stat()
        except OSError:
            # let the parser raise ProjectNotFoundError
            return self._parser.parse_file(path)

        with self._cache_lock:
            cached = self._cache.get(path)
        if cached is not None and cached[:2] == (stat.st_mtime_ns, stat.st_size):
            return cached[2]

        graph = self._parser.parse_file(path)
        with self._cache_lock:
            self._cache[path] = (stat.st_mtime_ns, stat.st_size, graph)
        return graph

    def get_project_info(self, path: str | Path) -> ProjectInfo:
        graph = self.open_project(path)
        return ProjectInfo(
            name=graph.name,
            file_path=str(graph.file_path),
            version=graph.version,
            sequence_count=len(graph.sequences),
            media_count=len(graph.main_media()),
            bin_count=len(graph.user_bins()),
            unresolved_count=len(graph.unresolved),
        )

    def get_sequences(self, path: str | Path) -> list[SequenceInfo]:
        graph = self.open_project(path)
        return [
            SequenceInfo(
                object_id=seq.object_id,
                name=seq.name,
                duration_seconds=ticks_to_seconds(seq.duration_ticks),
                frame_rate=round(seq.frame_rate.fps, 3),
                video_track_count=len(seq.video_tracks),
                audio_track_count=len(seq.audio_tracks),
                nested_count=len(seq.nested_sequence_ids),
            )
            for seq in graph.sequences.values()
        ]

    def get_media_items(self, path: str | Path) -> list[MediaItemInfo]:
        graph = self.open_project(path)
        inventory = MediaInventory(exists=self._exists).scan(graph)
        return [
            MediaItemInfo(
                object_id=item.object_id,
                file_path=str(item.path),
                file_name=item.file_name,
                file_size=item.file_size,
                file_size_formatted=format_file_size(item.file_size),
                is_online=item.is_online,
                media_type=item.kind.value,
                has_proxy=item.has_proxy,
                bin_path=item.bin_path,
                proxy_path=str(item.proxy_path) if item.proxy_path else None,
                duplicate_of=item.duplicate_of,
            )
            for item in inventory.items
        ]

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_media_usage(
        self,
        path: str | Path,
        sequence_ids: list[str] | None = None,
        handle_frames: int = 0,
        include_all_multicam: bool = True,
    ) -> UsageSummary:
        """Which media the selected sequences use, and which they don't.

        Raises:
            SequenceNotFoundError: If a selected id is not a sequence of the project.
            CycleDetected: If a selected sequence contains itself.
        """
        graph = self.open_project(path)
        inventory = MediaInventory(exists=self._exists).scan(graph)
        usage = SequenceAnalyzer(
            graph,
            handle_frames=handle_frames,
            include_all_multicam_angles=include_all_multicam,
            merge_gap_ticks=settings.merge_gap_ticks,
        ).analyze(sequence_ids, inventory)

        used_media = []
        for media_usage in usage.used.values():
            span = media_usage.span
            used_media.append(
                UsedMediaInfo(
                    object_id=media_usage.media_id,
                    file_name=media_usage.file_name,
                    usage_count=media_usage.usage_count,
                    time_range_seconds=span.to_seconds() if span else (0.0, 0.0),
                    ranges_seconds=[r.to_seconds() for r in media_usage.merged],
                    sequences=list(media_usage.sequence_ids),
                )
            )

        return UsageSummary(
            used_count=usage.used_count,
            unused_count=usage.unused_count,
            used_size=usage.used_size,
            unused_size=usage.unused_size,
            used_media=used_media,
            unused_media=list(usage.unused_ids),
            warnings=list(usage.warnings),
        )

    def estimate_output_size(self, project_path: str | Path, options: ConsolidationOptions) -> int:
        """Estimated bytes the consolidation would write."""
        graph = self.open_project(project_path)
        plan = plan_consolidation(
            graph,
            options,
            fallback_preset=TranscodePreset(settings.fallback_preset),
            merge_gap_ticks=settings.merge_gap_ticks,
            exists=self._exists,
        )
        return plan.bytes_total

    # ------------------------------------------------------------------
    # Consolidation jobs
    # ------------------------------------------------------------------

    def start_consolidation(self, project_path: str | Path, options: ConsolidationOptions) -> str:
        """Start a background consolidation and return its job id.

        Fails fast when the project cannot be read or a selected sequence is unknown.
        """
        graph = self.open_project(project_path)
        for sequence_id in options.sequences:
            if sequence_id not in graph.sequences:
                raise SequenceNotFoundError(f"Sequence not found: {sequence_id}")
        job = self.jobs.create_job(graph, options)
        return job.id

    def get_consolidation_progress(self, job_id: str) -> ConsolidationProgress:
        return self.jobs.progress(job_id)

    def cancel_consolidation(self, job_id: str) -> None:
        self.jobs.cancel(job_id)

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    def check_ffmpeg(self) -> str:
        """Encoder version string; raises EncoderUnavailable when missing."""
        return self.encoder.check_availability()

    def get_media_metadata(self, path: str | Path) -> MediaMetadata:
        path = Path(path)
        if not path.is_file():
            raise MediaNotFoundError(f"Media file not found: {path}")
        info = self.encoder.get_media_info(path)
        return MediaMetadata(
            file_path=str(path),
            info=info,
            lossless_trimmable=is_lossless_trimmable(info),
        )

    def validate_output_path(self, path: str | Path) -> OutputPathCheck:
        """Check that consolidation output can be written to ``path``."""
        path = Path(path).expanduser()
        if path.exists():
            if not path.is_dir():
                return OutputPathCheck(
                    path=str(path), is_valid=False, exists=True, message="Not a directory"
                )
            writable = os.access(path, os.W_OK | os.X_OK)
            return OutputPathCheck(
                path=str(path),
                is_valid=writable,
                exists=True,
                message="" if writable else "Directory is not writable",
            )

        parent = path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        writable = parent.is_dir() and os.access(parent, os.W_OK | os.X_OK)
        return OutputPathCheck(
            path=str(path),
            is_valid=writable,
            exists=False,
            message="Will be created" if writable else f"Cannot create under {parent}",
        )

    def shutdown(self) -> None:
        self.jobs.shutdown()
