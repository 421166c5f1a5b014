"""Media processing executor.

Runs an operation plan entry by entry: stream-copy trims, transcodes, whole-file
copies, or nothing at all. Non-fatal item failures are reported and processing moves
on; a fatal one stops the run. Cancellation is checked before every entry starts.
"""

import errno
import logging
import shutil
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from pcon.errors import (
    CancellationRequested,
    EncoderFailure,
    EncoderUnavailable,
    ItemError,
    OfflineMedia,
    OutputWriteFailure,
    UnsupportedCodecForLosslessTrim,
)
from pcon.models.options import LosslessFallback, ProcessingMode, TranscodePreset
from pcon.models.plan import (
    EntryOutcome,
    MediaRole,
    OperationPlan,
    OutcomeStatus,
    PlanEntry,
)
from pcon.services.interfaces import IEncoder, IProgressReporter
from pcon.services.media import is_lossless_trimmable

logger = logging.getLogger(__name__)

# errno values that mean the destination itself is unusable
_FATAL_WRITE_ERRNOS = {
    errno.ENOSPC,
    errno.EROFS,
    getattr(errno, "EDQUOT", errno.ENOSPC),
}


@dataclass
class ExecutionReport:
    """Per-entry outcomes of a run, in plan order."""

    outcomes: list[EntryOutcome] = field(default_factory=list)

    def outcome(self, index: int) -> EntryOutcome:
        return self.outcomes[index]

    @property
    def realized(self) -> list[EntryOutcome]:
        return [o for o in self.outcomes if o.realized]

    @property
    def output_bytes(self) -> int:
        return sum(o.output_bytes for o in self.outcomes)


class MediaProcessingExecutor:
    """Executes an ``OperationPlan`` against the filesystem and the encoder.

    Args:
        encoder: Encoder implementation (``FFmpegService`` in production)
        lossless_fallback: Policy for trim targets that cannot be stream-copied
        fallback_preset: Preset for fallback transcodes when the plan has none
        max_workers: Parallel file operations within one run
        exists: Online check for source files
    """

    def __init__(
        self,
        encoder: IEncoder,
        lossless_fallback: LosslessFallback = LosslessFallback.TRANSCODE,
        fallback_preset: TranscodePreset = TranscodePreset.PRORES_422,
        max_workers: int = 1,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self.encoder = encoder
        self.lossless_fallback = lossless_fallback
        self.fallback_preset = fallback_preset
        self.max_workers = max(1, max_workers)
        self._exists = exists or (lambda p: p.is_file())

    def run(
        self,
        plan: OperationPlan,
        reporter: IProgressReporter,
        cancel_event: threading.Event,
    ) -> ExecutionReport:
        """Execute every entry of ``plan``.

        Raises:
            CancellationRequested: If cancellation was observed
            ItemError: The first fatal item failure
        """
        report = ExecutionReport(
            outcomes=[EntryOutcome(index=e.index) for e in plan.entries]
        )
        try:
            self.prepare_output(plan)
        except OutputWriteFailure as e:
            reporter.add_error(e.file_path, e.message, True)
            raise

        fatal: list[ItemError] = []
        stop = threading.Event()

        def guarded(entry: PlanEntry) -> None:
            if cancel_event.is_set() or stop.is_set():
                report.outcomes[entry.index].status = OutcomeStatus.CANCELLED
                return
            try:
                report.outcomes[entry.index] = self._process(plan, entry, reporter, cancel_event)
            except CancellationRequested:
                report.outcomes[entry.index].status = OutcomeStatus.CANCELLED
                return
            except ItemError as e:
                logger.error("%s: %s", e.file_path, e.message)
                reporter.add_error(e.file_path, e.message, e.is_fatal)
                report.outcomes[entry.index] = EntryOutcome(
                    index=entry.index, status=OutcomeStatus.FAILED, message=e.message
                )
                if e.is_fatal:
                    fatal.append(e)
                    stop.set()
                    return
            except EncoderUnavailable as e:
                error = EncoderFailure(str(entry.source_path), str(e), is_fatal=True)
                reporter.add_error(error.file_path, error.message, True)
                report.outcomes[entry.index].status = OutcomeStatus.FAILED
                fatal.append(error)
                stop.set()
                return
            except Exception as e:
                logger.exception("Unexpected failure processing %s", entry.source_path)
                reporter.add_error(str(entry.source_path), str(e), False)
                report.outcomes[entry.index] = EntryOutcome(
                    index=entry.index, status=OutcomeStatus.FAILED, message=str(e)
                )
            reporter.complete_item(entry)

        if self.max_workers == 1:
            for entry in plan.entries:
                guarded(entry)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                list(pool.map(guarded, plan.entries))

        if fatal:
            raise fatal[0]
        if cancel_event.is_set():
            raise CancellationRequested("Consolidation cancelled")
        return report

    def prepare_output(self, plan: OperationPlan) -> None:
        """Create the output root and its media folders."""
        folders = [plan.output_root, plan.media_dir]
        if any(e.role is MediaRole.PROXY and e.writes_file for e in plan.entries):
            folders.append(plan.proxy_dir)
        for folder in folders:
            try:
                folder.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise OutputWriteFailure(str(folder), f"Cannot create output folder: {e}") from e

    # ------------------------------------------------------------------
    # Per entry
    # ------------------------------------------------------------------

    def _process(
        self,
        plan: OperationPlan,
        entry: PlanEntry,
        reporter: IProgressReporter,
        cancel_event: threading.Event,
    ) -> EntryOutcome:
        reporter.begin_item(entry, _describe(entry))

        if not entry.writes_file:
            return EntryOutcome(
                index=entry.index,
                status=OutcomeStatus.DONE,
                output_path=entry.source_path,
                action=ProcessingMode.NO_PROCESS,
            )

        if not entry.is_online or not self._exists(entry.source_path):
            if plan.options.skip_offline_media:
                reporter.add_warning(f"Skipping offline media: {entry.source_path}")
                return EntryOutcome(
                    index=entry.index, status=OutcomeStatus.SKIPPED, message="offline"
                )
            raise OfflineMedia(str(entry.source_path), "File is offline")

        try:
            entry.destination.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputWriteFailure(
                str(entry.destination), f"Cannot create folder: {e}"
            ) from e

        handlers = {
            ProcessingMode.TRIM: self._trim,
            ProcessingMode.TRANSCODE: self._transcode,
            ProcessingMode.COPY: self._copy,
        }
        output_path, action = handlers[entry.action](plan, entry, reporter, cancel_event)

        if entry.sidecars:
            self._copy_sidecars(entry, output_path, reporter)

        return EntryOutcome(
            index=entry.index,
            status=OutcomeStatus.DONE,
            output_path=output_path,
            action=action,
            output_bytes=_size(output_path),
        )

    def _trim(
        self,
        plan: OperationPlan,
        entry: PlanEntry,
        reporter: IProgressReporter,
        cancel_event: threading.Event,
    ) -> tuple[Path, ProcessingMode]:
        span = entry.span
        if span is None:
            return self._copy(plan, entry, reporter, cancel_event)

        info = self.encoder.get_media_info(entry.source_path)
        if not is_lossless_trimmable(info):
            codecs = ", ".join(c for c in info.av_codecs if c) or "unknown"
            policy = plan.options.lossless_fallback or self.lossless_fallback
            if policy is LosslessFallback.ERROR:
                raise UnsupportedCodecForLosslessTrim(
                    str(entry.source_path), f"Codec(s) {codecs} cannot be trimmed losslessly"
                )
            reporter.add_warning(
                f"{entry.source_path.name}: codec(s) {codecs} cannot be trimmed "
                f"losslessly, transcoding instead"
            )
            return self._transcode(plan, entry, reporter, cancel_event)

        output = self.encoder.trim_media(entry.source_path, entry.destination, span, cancel_event)
        return output, ProcessingMode.TRIM

    def _transcode(
        self,
        plan: OperationPlan,
        entry: PlanEntry,
        reporter: IProgressReporter,
        cancel_event: threading.Event,
    ) -> tuple[Path, ProcessingMode]:
        preset = plan.options.preset_or(self.fallback_preset)
        destination = entry.destination
        if destination.suffix.lower() != preset.extension:
            destination = destination.with_suffix(preset.extension)
        output = self.encoder.transcode_media(
            entry.source_path, destination, preset, entry.span, cancel_event
        )
        return output, ProcessingMode.TRANSCODE

    def _copy(
        self,
        plan: OperationPlan,
        entry: PlanEntry,
        reporter: IProgressReporter,
        cancel_event: threading.Event,
    ) -> tuple[Path, ProcessingMode]:
        try:
            shutil.copy2(entry.source_path, entry.destination)
        except OSError as e:
            if e.errno in _FATAL_WRITE_ERRNOS:
                raise OutputWriteFailure(str(entry.destination), f"Write failed: {e}") from e
            raise ItemError(str(entry.source_path), f"Copy failed: {e}") from e
        return entry.destination, ProcessingMode.COPY

    def _copy_sidecars(
        self, entry: PlanEntry, output_path: Path, reporter: IProgressReporter
    ) -> None:
        for sidecar in entry.sidecars:
            target = output_path.parent / sidecar.name
            try:
                shutil.copy2(sidecar, target)
            except OSError as e:
                reporter.add_warning(f"Failed to copy sidecar {sidecar}: {e}")


def _describe(entry: PlanEntry) -> str:
    verbs = {
        ProcessingMode.TRIM: "Trimming",
        ProcessingMode.TRANSCODE: "Transcoding",
        ProcessingMode.COPY: "Copying",
        ProcessingMode.NO_PROCESS: "Referencing",
    }
    return f"{verbs[entry.action]} {entry.source_path.name}"


def _size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
