"""Sequence/usage analyzer.

Walks selected sequences depth-first, descending into nested sequences and multicam
source sequences, and records which source ranges of which media the timelines use.
The walk is iterative: an explicit stack of per-sequence generators plus the set of
sequences on the active path. Meeting a sequence that is already on the path is a
cycle. Nested sequences fully walked once are not walked again in the same run.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

from pcon.errors import CycleDetected, SequenceNotFoundError
from pcon.models.media import Inventory
from pcon.models.project import Clip, ClipKind, ProjectGraph, Sequence
from pcon.models.timeline import TimeRange, merge_ranges
from pcon.models.usage import MediaUsage, UsageInterval, UsageResult

logger = logging.getLogger(__name__)


@dataclass
class _Descend:
    """Request from a sequence visit to walk another sequence."""

    sequence_id: str
    multicam_clip: Clip | None = None


@dataclass
class _Frame:
    sequence_id: str
    visit: Iterator[_Descend]
    memoise: bool


@dataclass
class _RunState:
    intervals: dict[str, list[UsageInterval]] = field(default_factory=dict)
    walked: set[str] = field(default_factory=set)
    # (container, source sequence, position, window, angle) of multicam clips walked
    multicam_walked: set[tuple] = field(default_factory=set)
    analyzed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SequenceAnalyzer:
    """Computes per-media usage intervals for a set of sequences.

    Args:
        graph: Parsed project
        handle_frames: Extra frames kept before and after every used range
        include_all_multicam_angles: Record every angle, not only the selected one
        merge_gap_ticks: Gap still merged when combining intervals
    """

    def __init__(
        self,
        graph: ProjectGraph,
        handle_frames: int = 0,
        include_all_multicam_angles: bool = True,
        merge_gap_ticks: int = 0,
    ) -> None:
        if handle_frames < 0:
            raise ValueError("handle_frames must be non-negative")
        self.graph = graph
        self.handle_frames = handle_frames
        self.include_all_multicam_angles = include_all_multicam_angles
        self.merge_gap_ticks = max(merge_gap_ticks, 0)

    def analyze(
        self, sequence_ids: list[str] | None = None, inventory: Inventory | None = None
    ) -> UsageResult:
        """Analyze the given sequences (all sequences when empty).

        Raises:
            SequenceNotFoundError: If a selected id is not a sequence of the project.
            CycleDetected: If a sequence contains itself, directly or transitively.
        """
        selected = list(sequence_ids) if sequence_ids else list(self.graph.sequences)
        for sequence_id in selected:
            if sequence_id not in self.graph.sequences:
                raise SequenceNotFoundError(f"Sequence not found: {sequence_id}")

        state = _RunState()
        # unresolved references are reported with the usage
        state.warnings.extend(
            f"Dangling reference: {dangling.message}" for dangling in self.graph.unresolved
        )
        for sequence_id in selected:
            self._walk(sequence_id, state)

        result = self._aggregate(selected, state, inventory)
        logger.info(
            "Analyzed %d sequences (%d walked): %d media used, %d unused",
            len(selected),
            len(result.analyzed_sequence_ids),
            result.used_count,
            result.unused_count,
        )
        return result

    # ------------------------------------------------------------------
    # Walk
    # ------------------------------------------------------------------

    def _walk(self, root_id: str, state: _RunState) -> None:
        if root_id in state.walked:
            return
        root = self.graph.sequences[root_id]
        path: list[str] = [root_id]
        stack = [_Frame(root_id, self._visit_sequence(root, state), memoise=True)]
        self._mark_analyzed(root_id, state)

        while stack:
            frame = stack[-1]
            try:
                request = next(frame.visit)
            except StopIteration:
                stack.pop()
                path.pop()
                if frame.memoise:
                    state.walked.add(frame.sequence_id)
                continue

            child_id = request.sequence_id
            if child_id in path:
                chain = path[path.index(child_id):] + [child_id]
                raise CycleDetected(chain)
            if request.multicam_clip is None and child_id in state.walked:
                continue

            child = self.graph.get_sequence(child_id)
            if child is None:
                self._warn(state, f"Sequence {frame.sequence_id} references missing sequence {child_id}")
                continue

            self._mark_analyzed(child_id, state)
            path.append(child_id)
            if request.multicam_clip is None:
                stack.append(_Frame(child_id, self._visit_sequence(child, state), memoise=True))
            else:
                stack.append(
                    _Frame(
                        child_id,
                        self._visit_multicam(child, request.multicam_clip, state),
                        memoise=False,
                    )
                )

    def _visit_sequence(self, sequence: Sequence, state: _RunState) -> Iterator[_Descend]:
        logger.debug(
            "Walking sequence '%s' (%s): %d video / %d audio tracks",
            sequence.name,
            sequence.object_id,
            len(sequence.video_tracks),
            len(sequence.audio_tracks),
        )
        for clip in sequence.iter_clips():
            yield from self._visit_clip(clip, sequence, state, is_multicam_angle=False)

    def _visit_multicam(
        self, source: Sequence, multicam_clip: Clip, state: _RunState
    ) -> Iterator[_Descend]:
        """Angle clips of a multicam source sequence that the multicam clip plays."""
        if self.include_all_multicam_angles:
            angle_tracks = list(source.video_tracks)
        elif multicam_clip.selected_angle < len(source.video_tracks):
            angle_tracks = [source.video_tracks[multicam_clip.selected_angle]]
        else:
            self._warn(
                state,
                f"Multicam clip {multicam_clip.object_id} selects angle "
                f"{multicam_clip.selected_angle} but {source.name} has "
                f"{len(source.video_tracks)} angles",
            )
            angle_tracks = []

        window = multicam_clip.source
        for track in [*angle_tracks, *source.audio_tracks]:
            for clip in track.clips:
                overlap = _overlapping_source(clip, window)
                if overlap is None:
                    continue
                yield from self._visit_clip(
                    clip.model_copy(update={"source": overlap}),
                    source,
                    state,
                    is_multicam_angle=track.is_video,
                )

    def _visit_clip(
        self, clip: Clip, container: Sequence, state: _RunState, is_multicam_angle: bool
    ) -> Iterator[_Descend]:
        if clip.kind is ClipKind.MEDIA and clip.media_id is not None:
            self._record(clip, container, state, is_multicam_angle)
        elif clip.kind is ClipKind.NESTED and clip.sequence_ref is not None:
            yield _Descend(clip.sequence_ref)
        elif clip.kind is ClipKind.MULTICAM and clip.sequence_ref is not None:
            # linked video and audio items of one multicam clip play the same window
            key = (
                container.object_id,
                clip.sequence_ref,
                clip.position,
                clip.source,
                clip.selected_angle,
            )
            if key in state.multicam_walked:
                return
            state.multicam_walked.add(key)
            yield _Descend(clip.sequence_ref, multicam_clip=clip)

    def _record(
        self, clip: Clip, container: Sequence, state: _RunState, is_multicam_angle: bool
    ) -> None:
        media = self.graph.get_media(clip.media_id)
        if media is None:
            return
        handle_ticks = container.frame_rate.frames_to_ticks(self.handle_frames)
        used = clip.source.expand(handle_ticks, max_ticks=media.duration_ticks)
        if used.is_empty:
            self._warn(
                state,
                f"Clip {clip.object_id} uses no part of {media.file_name} after clamping",
            )
            return
        state.intervals.setdefault(media.object_id, []).append(
            UsageInterval(
                media_id=media.object_id,
                range=used,
                sequence_id=container.object_id,
                clip_id=clip.object_id,
                is_multicam_angle=is_multicam_angle,
            )
        )

    # ------------------------------------------------------------------
    # Aggregate
    # ------------------------------------------------------------------

    def _aggregate(
        self, selected: list[str], state: _RunState, inventory: Inventory | None
    ) -> UsageResult:
        sizes = {i.object_id: i.file_size for i in inventory.items} if inventory else {}

        used: dict[str, MediaUsage] = {}
        # declaration order, not discovery order
        for media_id in self.graph.media:
            intervals = state.intervals.get(media_id)
            if not intervals:
                continue
            sequence_ids: list[str] = []
            for interval in intervals:
                if interval.sequence_id not in sequence_ids:
                    sequence_ids.append(interval.sequence_id)
            used[media_id] = MediaUsage(
                media_id=media_id,
                file_name=self.graph.media[media_id].file_name,
                file_size=sizes.get(media_id, 0),
                intervals=intervals,
                merged=merge_ranges([i.range for i in intervals], self.merge_gap_ticks),
                sequence_ids=sequence_ids,
                is_multicam_angle=any(i.is_multicam_angle for i in intervals),
            )

        candidates = (
            [i.object_id for i in inventory.items]
            if inventory is not None
            else [m.object_id for m in self.graph.main_media()]
        )
        unused_ids = [media_id for media_id in candidates if media_id not in used]

        return UsageResult(
            sequence_ids=selected,
            analyzed_sequence_ids=state.analyzed,
            handle_frames=self.handle_frames,
            include_all_multicam_angles=self.include_all_multicam_angles,
            used=used,
            unused_ids=unused_ids,
            unused_size=sum(sizes.get(media_id, 0) for media_id in unused_ids),
            warnings=state.warnings,
        )

    @staticmethod
    def _mark_analyzed(sequence_id: str, state: _RunState) -> None:
        if sequence_id not in state.analyzed:
            state.analyzed.append(sequence_id)

    @staticmethod
    def _warn(state: _RunState, message: str) -> None:
        logger.warning(message)
        state.warnings.append(message)


def _overlapping_source(clip: Clip, window: TimeRange) -> TimeRange | None:
    """Source range of ``clip`` played while its position lies inside ``window``."""
    if not clip.position.overlaps(window):
        return None
    start = max(clip.position.start_ticks, window.start_ticks)
    end = min(clip.position.end_ticks, window.end_ticks)
    source_start = clip.source.start_ticks + (start - clip.position.start_ticks)
    source_end = min(source_start + (end - start), clip.source.end_ticks)
    return TimeRange.from_bounds(source_start, max(source_end, source_start))
