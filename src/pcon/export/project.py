"""Project rewriter: writes the consolidated project file."""

import copy
import gzip
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from pcon.errors import OutputWriteFailure
from pcon.models.graph import ObjectArena, XmlObject
from pcon.models.options import ProcessingMode
from pcon.models.plan import EntryOutcome, MediaRole, OperationPlan, PlanEntry
from pcon.models.project import Clip, ClipKind, ProjectGraph
from pcon.models.timeline import TimeRange
from pcon.services.project_parser import MEDIA_PATH_FIELDS, build_arena

logger = logging.getLogger(__name__)


@dataclass
class _Output:
    """A realized output file for one media."""

    entry: PlanEntry
    path: Path
    span: TimeRange | None
    media_uid: str
    element: ET.Element


@dataclass
class RewriteResult:
    """Summary of a project rewrite."""

    project_path: Path
    media_remapped: int = 0
    clips_rebased: int = 0
    warnings: list[str] = field(default_factory=list)


class ProjectRewriter:
    """Emits a copy of the project pointing at the consolidated media.

    The source tree is copied, never modified. Every remapped media gets its path
    replaced; clips played from a time-bounded output get their in/out points moved
    so that the output's first frame is zero. A media split into several outputs gets
    one cloned ``Media`` element per extra output and its clips are re-pointed.
    """

    def rewrite(
        self,
        graph: ProjectGraph,
        plan: OperationPlan,
        outcomes: list[EntryOutcome],
        output_path: Path | None = None,
    ) -> RewriteResult:
        """Write the consolidated project.

        Args:
            graph: The parsed source project
            plan: The executed plan
            outcomes: Executor outcomes, indexed like ``plan.entries``
            output_path: Project file to write (default: output root / source name)

        Returns:
            RewriteResult with the written path and any warnings

        Raises:
            OutputWriteFailure: If the project file cannot be written (always fatal)
        """
        root = copy.deepcopy(graph.arena.root)
        arena = build_arena(root)
        parents = {child: parent for parent in root.iter() for child in parent}
        next_id = arena.max_numeric_id() + 1

        destination = Path(output_path or plan.output_root / graph.file_path.name)
        if destination.resolve() == graph.file_path.resolve():
            # never overwrite the source project
            destination = destination.with_name(
                f"{graph.file_path.stem}_consolidated{graph.file_path.suffix}"
            )
        result = RewriteResult(project_path=destination)

        outputs_by_media = self._remap_media(arena, parents, plan, outcomes, result)

        for clip in graph.all_clips():
            if clip.kind is not ClipKind.MEDIA or clip.media_id not in outputs_by_media:
                continue
            next_id = self._rebase_clip(
                arena, parents, clip, outputs_by_media[clip.media_id], result, next_id
            )

        self._write(root, destination)
        logger.info(
            "Wrote %s: %d media remapped, %d clips rebased, %d warnings",
            destination,
            result.media_remapped,
            result.clips_rebased,
            len(result.warnings),
        )
        return result

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def _remap_media(
        self,
        arena: ObjectArena,
        parents: dict[ET.Element, ET.Element],
        plan: OperationPlan,
        outcomes: list[EntryOutcome],
        result: RewriteResult,
    ) -> dict[str, list[_Output]]:
        by_media: dict[str, list[PlanEntry]] = {}
        for entry in plan.entries:
            if entry.writes_file:
                by_media.setdefault(entry.media_id, []).append(entry)

        remapped: dict[str, list[_Output]] = {}
        for media_id, entries in by_media.items():
            media_obj = arena.lookup(media_id)
            if media_obj is None:
                continue
            if not all(outcomes[e.index].realized for e in entries):
                result.warnings.append(
                    f"Media {media_id} was not fully consolidated; keeping its original path"
                )
                continue

            outputs: list[_Output] = []
            for position, entry in enumerate(entries):
                outcome = outcomes[entry.index]
                path = outcome.output_path or entry.destination
                span = entry.span if outcome.action is not ProcessingMode.COPY else None
                if position == 0:
                    element = media_obj.element
                    uid = media_obj.key.value
                else:
                    element, uid = self._clone_media(media_obj, parents)
                _set_media_path(element, path)
                if span is not None:
                    _set_text(element, "Duration", span.duration_ticks)
                outputs.append(_Output(entry=entry, path=path, span=span, media_uid=uid, element=element))
            remapped[media_id] = outputs
            result.media_remapped += 1

        # proxies have no clips of their own
        return {
            media_id: outputs
            for media_id, outputs in remapped.items()
            if outputs[0].entry.role is MediaRole.MAIN
        }

    @staticmethod
    def _clone_media(
        media_obj: XmlObject, parents: dict[ET.Element, ET.Element]
    ) -> tuple[ET.Element, str]:
        clone = copy.deepcopy(media_obj.element)
        uid = str(uuid4())
        clone.set("ObjectUID", uid)
        _insert_after(parents, media_obj.element, clone)
        return clone, uid

    # ------------------------------------------------------------------
    # Clips
    # ------------------------------------------------------------------

    def _rebase_clip(
        self,
        arena: ObjectArena,
        parents: dict[ET.Element, ET.Element],
        clip: Clip,
        outputs: list[_Output],
        result: RewriteResult,
        next_id: int,
    ) -> int:
        output = _output_for_clip(clip, outputs)
        clip_obj = arena.lookup(clip.source_clip_id)

        if output is not outputs[0]:
            source_obj = arena.lookup(clip.media_source_id)
            if clip_obj is not None and source_obj is not None:
                next_id = self._repoint_source(parents, clip_obj, source_obj, output, next_id)

        if output.span is None or clip_obj is None:
            return next_id

        offset = output.span.start_ticks
        length = output.span.duration_ticks
        new_in = clip.source.start_ticks - offset
        new_out = clip.source.end_ticks - offset
        clamped_in = min(max(new_in, 0), length)
        clamped_out = min(max(new_out, clamped_in), length)
        if (clamped_in, clamped_out) != (new_in, new_out):
            # keep the timeline position playing the same source frames
            item_obj = arena.lookup(clip.object_id)
            if item_obj is not None:
                start = clip.position.start_ticks + (clamped_in - new_in)
                end = max(clip.position.end_ticks - (new_out - clamped_out), start)
                _set_text(item_obj.element, "ClipTrackItem/TrackItem/Start", start)
                _set_text(item_obj.element, "ClipTrackItem/TrackItem/End", end)
            result.warnings.append(
                f"Clip {clip.object_id} in sequence {clip.sequence_id} uses media outside "
                f"{output.path.name}; it was shortened to the consolidated part"
            )
        _set_text(clip_obj.element, "Clip/InPoint", clamped_in)
        _set_text(clip_obj.element, "Clip/OutPoint", clamped_out)
        result.clips_rebased += 1
        return next_id

    @staticmethod
    def _repoint_source(
        parents: dict[ET.Element, ET.Element],
        clip_obj: XmlObject,
        source_obj: XmlObject,
        output: _Output,
        next_id: int,
    ) -> int:
        """Give the clip its own media source pointing at the extra output's media."""
        clone = copy.deepcopy(source_obj.element)
        clone.attrib.pop("ObjectUID", None)
        clone.set("ObjectID", str(next_id))
        media_ref = clone.find("MediaSource/Media")
        if media_ref is not None:
            media_ref.attrib.pop("ObjectRef", None)
            media_ref.set("ObjectURef", output.media_uid)
        _insert_after(parents, source_obj.element, clone)

        source_ref = clip_obj.element.find("Clip/Source")
        if source_ref is not None:
            source_ref.attrib.pop("ObjectURef", None)
            source_ref.set("ObjectRef", str(next_id))
        return next_id + 1

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    @staticmethod
    def _write(root: ET.Element, destination: Path) -> None:
        data = ET.tostring(root, encoding="utf-8", xml_declaration=True)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as f:
                f.write(gzip.compress(data))
        except OSError as e:
            raise OutputWriteFailure(
                str(destination), f"Cannot write project file: {e}", is_fatal=True
            ) from e


def _output_for_clip(clip: Clip, outputs: list[_Output]) -> _Output:
    for output in outputs:
        if clip.object_id in output.entry.clip_ids:
            return output
    for output in outputs:
        if output.span is None or output.span.contains_range(clip.source):
            return output
    # unselected sequences: pick the output overlapping the clip most
    return max(
        outputs,
        key=lambda o: o.span.overlap_ticks(clip.source) if o.span is not None else 0,
    )


def _set_media_path(element: ET.Element, path: Path) -> None:
    found = False
    for name in MEDIA_PATH_FIELDS:
        node = element.find(name)
        if node is not None:
            node.text = str(path)
            found = True
    if not found:
        ET.SubElement(element, MEDIA_PATH_FIELDS[0]).text = str(path)


def _set_text(element: ET.Element, path: str, value: int) -> None:
    node = element
    for part in path.split("/"):
        child = node.find(part)
        if child is None:
            child = ET.SubElement(node, part)
        node = child
    node.text = str(value)


def _insert_after(
    parents: dict[ET.Element, ET.Element], anchor: ET.Element, new: ET.Element
) -> None:
    parent = parents[anchor]
    parent.insert(list(parent).index(anchor) + 1, new)
    parents[new] = parent
