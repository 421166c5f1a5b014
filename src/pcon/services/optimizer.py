"""Interval optimizer: turns media usage into an operation plan."""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pcon.models.media import Inventory, InventoryItem
from pcon.models.options import (
    ConsolidationOptions,
    FolderStructure,
    OptimizationMode,
    ProcessingMode,
    ProxyMode,
    TranscodePreset,
)
from pcon.models.plan import MediaRole, OperationPlan, PlanEntry
from pcon.models.project import MediaItem, ProjectGraph
from pcon.models.timeline import FrameRate, TimeRange, bounding_range
from pcon.models.usage import MediaUsage, UsageResult
from pcon.services.analyzer import SequenceAnalyzer
from pcon.services.inventory import MediaInventory, find_common_ancestor

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass
class _Group:
    """Source ranges realized by one output file."""

    intervals: list[TimeRange]
    clip_ids: list[str]


@dataclass
class _Source:
    media_id: str
    role: MediaRole
    path: Path
    is_online: bool
    size: int
    sidecars: list[Path]
    sidecar_size: int
    action_override: ProcessingMode | None = None


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name).strip().strip(".")
    return cleaned or "media"


class IntervalOptimizer:
    """Builds an ``OperationPlan`` from a usage result and consolidation options.

    Args:
        graph: Parsed project
        inventory: Inventory of the same project
        exists: Filesystem check used when generating unique names
    """

    def __init__(
        self,
        graph: ProjectGraph,
        inventory: Inventory,
        exists: Callable[[Path], bool] | None = None,
    ) -> None:
        self.graph = graph
        self.inventory = inventory
        self._items = inventory.as_dict()
        self._exists = exists or (lambda p: p.exists())
        all_paths = [m.path for m in graph.media.values()]
        self._common_ancestor = find_common_ancestor(all_paths)

    def plan(
        self,
        usage: UsageResult,
        options: ConsolidationOptions,
        fallback_preset: TranscodePreset = TranscodePreset.PRORES_422,
    ) -> OperationPlan:
        """Create the operation plan.

        Args:
            usage: Result of the sequence analyzer
            options: Consolidation options
            fallback_preset: Preset used for transcode when options carry none

        Returns:
            OperationPlan with one entry per output file
        """
        plan = OperationPlan(options=options, output_root=Path(options.output_path))
        preset = options.preset_or(fallback_preset)
        taken: set[str] = set()

        for media_id, media_usage in usage.used.items():
            media = self.graph.get_media(media_id)
            if media is None:
                plan.warnings.append(f"Media not found: {media_id}")
                continue
            for source in self._sources(media, options):
                action = self._action_for(media, source, options)
                groups = self._groups(media_usage, options.optimization_mode, action)
                self._add_entries(plan, media, source, action, groups, preset, taken)

        logger.info(
            "Plan: %d entries, %d bytes estimated, %d warnings",
            plan.files_total,
            plan.bytes_total,
            len(plan.warnings),
        )
        return plan

    # ------------------------------------------------------------------
    # Sources and actions
    # ------------------------------------------------------------------

    def _sources(self, media: MediaItem, options: ConsolidationOptions) -> list[_Source]:
        item = self._items.get(media.object_id)
        main = self._main_source(media, item)
        proxy = self.graph.get_media(media.proxy_id) if media.proxy_id else None
        if proxy is None:
            return [main]

        proxy_online = item.proxy_online if item is not None else False
        proxy_size = item.proxy_size if item is not None else 0

        if options.proxy_mode is ProxyMode.MAIN_ONLY:
            return [main]
        if options.proxy_mode is ProxyMode.PROXY_ONLY:
            if not proxy_online:
                return [main]
            # proxy file stands in for the main media
            return [
                _Source(
                    media_id=media.object_id,
                    role=MediaRole.MAIN,
                    path=proxy.path,
                    is_online=proxy_online,
                    size=proxy_size,
                    sidecars=[],
                    sidecar_size=0,
                )
            ]

        proxy_source = _Source(
            media_id=proxy.object_id,
            role=MediaRole.PROXY,
            path=proxy.path,
            is_online=proxy_online,
            size=proxy_size,
            sidecars=[],
            sidecar_size=0,
        )
        if options.proxy_mode is ProxyMode.PRESERVE:
            proxy_source.action_override = ProcessingMode.NO_PROCESS
        return [main, proxy_source]

    def _main_source(self, media: MediaItem, item: InventoryItem | None) -> _Source:
        if item is None:
            return _Source(
                media_id=media.object_id,
                role=MediaRole.MAIN,
                path=media.path,
                is_online=False,
                size=0,
                sidecars=[],
                sidecar_size=0,
            )
        return _Source(
            media_id=media.object_id,
            role=MediaRole.MAIN,
            path=media.path,
            is_online=item.is_online,
            size=item.file_size,
            sidecars=list(item.sidecars),
            sidecar_size=item.sidecar_size,
        )

    @staticmethod
    def _action_for(
        media: MediaItem, source: _Source, options: ConsolidationOptions
    ) -> ProcessingMode:
        if source.action_override is not None:
            return source.action_override
        action = options.processing_mode
        if action in (ProcessingMode.TRIM, ProcessingMode.TRANSCODE) and not media.kind.is_time_based:
            return ProcessingMode.COPY
        return action

    def _groups(
        self, usage: MediaUsage, mode: OptimizationMode, action: ProcessingMode
    ) -> list[_Group]:
        all_clips = [i.clip_id for i in usage.intervals]
        if action in (ProcessingMode.COPY, ProcessingMode.NO_PROCESS):
            # whole-file outputs; splitting would only duplicate them
            return [_Group(intervals=list(usage.merged), clip_ids=all_clips)]

        builders = {
            OptimizationMode.KEEP_FILES: self._keep_files_groups,
            OptimizationMode.MINIMIZE: self._minimize_groups,
            OptimizationMode.UNIQUE_CLIPS: self._unique_clip_groups,
        }
        return builders[mode](usage)

    @staticmethod
    def _keep_files_groups(usage: MediaUsage) -> list[_Group]:
        return [
            _Group(
                intervals=list(usage.merged),
                clip_ids=[i.clip_id for i in usage.intervals],
            )
        ]

    @staticmethod
    def _minimize_groups(usage: MediaUsage) -> list[_Group]:
        groups = []
        for merged in usage.merged:
            clip_ids = [
                i.clip_id for i in usage.intervals if merged.contains_range(i.range)
            ]
            groups.append(_Group(intervals=[merged], clip_ids=clip_ids))
        return groups

    @staticmethod
    def _unique_clip_groups(usage: MediaUsage) -> list[_Group]:
        return [_Group(intervals=[i.range], clip_ids=[i.clip_id]) for i in usage.intervals]

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def _add_entries(
        self,
        plan: OperationPlan,
        media: MediaItem,
        source: _Source,
        action: ProcessingMode,
        groups: list[_Group],
        preset: TranscodePreset,
        taken: set[str],
    ) -> None:
        options = plan.options
        directory = self._directory(plan, media, source)
        base_name = self._base_name(media, source, options)
        if action is ProcessingMode.TRANSCODE:
            base_name = Path(base_name).stem + preset.extension
        frame_rate = media.frame_rate or FrameRate()

        for part, group in enumerate(groups, start=1):
            span = bounding_range(group.intervals)
            if action is ProcessingMode.NO_PROCESS:
                destination = source.path
                suffix = ""
            else:
                suffix = self._suffix(options, span, frame_rate, part, len(groups), action)
                destination = directory / _with_suffix(base_name, suffix)

            unique_index = None
            if action is not ProcessingMode.NO_PROCESS:
                destination, unique_index = self._claim(plan, destination, taken)

            with_sidecars = (
                options.copy_sidecar_files
                and source.role is MediaRole.MAIN
                and source.is_online
                and part == 1
                and action is not ProcessingMode.NO_PROCESS
            )
            entry = PlanEntry(
                index=len(plan.entries),
                media_id=source.media_id,
                role=source.role,
                kind=media.kind,
                action=action,
                source_path=source.path,
                destination=destination,
                intervals=list(group.intervals),
                clip_ids=list(group.clip_ids),
                is_online=source.is_online,
                source_size=source.size,
                source_duration_ticks=media.duration_ticks,
                sidecars=list(source.sidecars) if with_sidecars else [],
                base_name=base_name,
                name_suffix=suffix,
                unique_index=unique_index,
            )
            entry.estimated_bytes = estimate_entry_bytes(
                entry, source.sidecar_size if with_sidecars else 0
            )
            plan.entries.append(entry)

    def _directory(self, plan: OperationPlan, media: MediaItem, source: _Source) -> Path:
        base = plan.media_dir if source.role is MediaRole.MAIN else plan.proxy_dir
        structure = plan.options.folder_structure
        if structure is FolderStructure.BINS:
            bin_path = self.graph.bin_path_for_media(media.object_id)
            if bin_path:
                return base.joinpath(*(sanitize_filename(p) for p in bin_path.split("/") if p))
        elif structure is FolderStructure.ORIGINAL and self._common_ancestor is not None:
            try:
                relative = source.path.parent.relative_to(self._common_ancestor)
            except ValueError:
                return base
            return base / relative
        return base

    def _base_name(self, media: MediaItem, source: _Source, options: ConsolidationOptions) -> str:
        file_name = source.path.name or f"{media.object_id}"
        if options.use_project_item_names and source.role is MediaRole.MAIN:
            item = self.graph.project_item_for_media(media.object_id)
            if item is not None and item.name:
                name = sanitize_filename(item.name)
                ext = source.path.suffix
                if ext and not name.lower().endswith(ext.lower()):
                    name += ext
                return name
        return sanitize_filename(file_name)

    @staticmethod
    def _suffix(
        options: ConsolidationOptions,
        span: TimeRange | None,
        frame_rate: FrameRate,
        part: int,
        parts: int,
        action: ProcessingMode,
    ) -> str:
        time_bounded = action in (ProcessingMode.TRIM, ProcessingMode.TRANSCODE)
        if options.add_frame_range_to_filename and time_bounded and span is not None:
            start = frame_rate.ticks_to_frames(span.start_ticks)
            end = frame_rate.ticks_to_frames(span.end_ticks)
            return f"_{start}-{end}"
        if parts > 1:
            return f"_part{part:02d}"
        return ""

    def _claim(
        self, plan: OperationPlan, destination: Path, taken: set[str]
    ) -> tuple[Path, int | None]:
        key = str(destination).lower()
        if not plan.options.generate_unique_filenames:
            if key in taken:
                plan.warnings.append(f"Output name collision: {destination}")
            taken.add(key)
            return destination, None

        candidate = destination
        counter = 0
        while str(candidate).lower() in taken or self._exists(candidate):
            counter += 1
            candidate = destination.with_name(f"{destination.stem}_{counter:03d}{destination.suffix}")
        taken.add(str(candidate).lower())
        return candidate, counter or None


def estimate_entry_bytes(entry: PlanEntry, sidecar_size: int = 0) -> int:
    """Deterministic output size estimate for one plan entry."""
    if not entry.is_online or entry.action is ProcessingMode.NO_PROCESS:
        return 0
    if entry.action is ProcessingMode.COPY:
        return entry.source_size + sidecar_size

    span = entry.span
    duration = entry.source_duration_ticks
    if span is None or not duration:
        return entry.source_size + sidecar_size
    fraction = min(span.duration_ticks / duration, 1.0)
    return int(entry.source_size * fraction) + sidecar_size


def _with_suffix(name: str, suffix: str) -> str:
    if not suffix:
        return name
    path = Path(name)
    return f"{path.stem}{suffix}{path.suffix}"


def plan_consolidation(
    graph: ProjectGraph,
    options: ConsolidationOptions,
    fallback_preset: TranscodePreset,
    merge_gap_ticks: int = 0,
    exists: Callable[[Path], bool] | None = None,
) -> OperationPlan:
    """Inventory, analyze and plan in one go.

    Analyzer warnings come first in the returned plan's warnings.

    Raises:
        SequenceNotFoundError: If a selected sequence id is unknown.
        CycleDetected: If a selected sequence contains itself.
    """
    inventory = MediaInventory(exists=exists).scan(graph)
    usage = SequenceAnalyzer(
        graph,
        handle_frames=options.handle_frames,
        include_all_multicam_angles=options.include_all_multicam_angles,
        merge_gap_ticks=merge_gap_ticks,
    ).analyze(options.sequences, inventory)
    plan = IntervalOptimizer(graph, inventory, exists=exists).plan(usage, options, fallback_preset)
    plan.warnings[:0] = usage.warnings
    return plan
