"""Project file parser.

A project file is a gzip stream wrapping an XML document. Parsing happens in two
passes: every identified element is indexed and every reference recorded, then every
reference is resolved against the index. Typed nodes are built from the resulting
arena and only ever point at each other by identifier.
"""

import gzip
import logging
import xml.etree.ElementTree as ET
import zlib
from pathlib import Path

from pcon.errors import CorruptArchive, MalformedDocument, ProjectNotFoundError
from pcon.models.graph import (
    DanglingReference,
    ObjectArena,
    ObjectKey,
    Reference,
    XmlObject,
    object_key,
    reference_target,
)
from pcon.models.project import (
    Bin,
    Clip,
    ClipKind,
    MediaItem,
    MediaKind,
    ProjectGraph,
    ProjectItem,
    Sequence,
    Track,
)
from pcon.models.timeline import TICKS_PER_SECOND, FrameRate, TimeRange

logger = logging.getLogger(__name__)

SEQUENCE_CLASS_ID = "6a15d903-8739-11d5-af2d-9b7855ad8974"

MEDIA_SOURCE_TAGS = ("VideoMediaSource", "AudioMediaSource")
SEQUENCE_SOURCE_TAGS = ("VideoSequenceSource", "AudioSequenceSource")
BIN_TAGS = ("RootProjectItem", "BinProjectItem")
MEDIA_PATH_FIELDS = ("ActualMediaFilePath", "FilePath", "MediaFilePath")

# In-points beyond a day are not real source times
MAX_REASONABLE_IN_POINT = 24 * 3600 * TICKS_PER_SECOND


def decompress_project(data: bytes) -> bytes:
    """Strip the gzip envelope."""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptArchive(f"Project file is not a valid gzip archive: {e}") from e


def parse_document(xml_bytes: bytes) -> ET.Element:
    """Parse the decompressed document into an element tree."""
    try:
        return ET.fromstring(xml_bytes)
    except ET.ParseError as e:
        raise MalformedDocument(f"Project XML could not be parsed: {e}") from e


def build_arena(root: ET.Element) -> ObjectArena:
    """Index identified elements and resolve references (two passes).

    Raises:
        MalformedDocument: If an identifier is defined twice.
    """
    objects: dict[ObjectKey, XmlObject] = {}
    pending: list[tuple[ObjectKey, ET.Element, ObjectKey]] = []

    # Pass 1: index objects, record references against their owning object
    stack: list[tuple[ET.Element, ObjectKey | None]] = [(root, None)]
    while stack:
        element, owner = stack.pop()
        key = object_key(element)
        if key is not None:
            if key in objects:
                raise MalformedDocument(
                    f"Duplicate object identifier {key.value} "
                    f"({objects[key].tag} and {element.tag})"
                )
            objects[key] = XmlObject(key=key, tag=element.tag, element=element, order=len(objects))
            owner = key
        else:
            target = reference_target(element)
            if target is not None and owner is not None:
                pending.append((owner, element, target))
        stack.extend((child, owner) for child in reversed(list(element)))

    # Pass 2: resolve
    unresolved: list[DanglingReference] = []
    for owner, element, target in pending:
        source = objects[owner]
        if target in objects:
            source.refs.append(
                Reference(source=owner, field=element.tag, target=target, element=element)
            )
        else:
            unresolved.append(
                DanglingReference(
                    source_id=owner.value,
                    source_tag=source.tag,
                    field=element.tag,
                    target_id=target.value,
                )
            )

    return ObjectArena(root=root, objects=objects, unresolved=unresolved)


class ProjectParser:
    """Turns a project file into a ``ProjectGraph``."""

    def parse_file(self, path: Path) -> ProjectGraph:
        """Read and parse a project file from disk.

        Args:
            path: Path to the project file

        Returns:
            The parsed project graph
        """
        path = Path(path)
        if not path.is_file():
            raise ProjectNotFoundError(f"Project file not found: {path}")
        return self.parse_bytes(path.read_bytes(), path)

    def parse_bytes(self, data: bytes, file_path: Path) -> ProjectGraph:
        """Parse raw project file bytes."""
        root = parse_document(decompress_project(data))
        arena = build_arena(root)

        for dangling in arena.unresolved:
            logger.warning("Dangling reference: %s", dangling.message)

        media = self._build_media(arena)
        bins, project_items = self._build_project_panel(arena, media)
        sequences = self._build_sequences(arena, media)

        version_attr = root.get("Version", "0")
        graph = ProjectGraph(
            file_path=Path(file_path),
            name=Path(file_path).stem,
            version=int(version_attr) if version_attr.isdigit() else 0,
            arena=arena,
            sequences=sequences,
            media=media,
            bins=bins,
            project_items=project_items,
            unresolved=tuple(arena.unresolved),
        )
        logger.info(
            "Parsed %s: %d objects, %d sequences, %d media, %d bins, %d dangling refs",
            graph.file_path.name,
            len(arena),
            len(sequences),
            len(media),
            len(graph.user_bins()),
            len(graph.unresolved),
        )
        return graph

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def _build_media(self, arena: ObjectArena) -> dict[str, MediaItem]:
        media_objects = arena.objects("Media")
        proxy_ids: set[str] = set()
        for obj in media_objects:
            proxy = arena.follow(obj, "ProxyMedia")
            if proxy is not None and proxy.tag == "Media":
                proxy_ids.add(proxy.key.value)

        media: dict[str, MediaItem] = {}
        for obj in media_objects:
            raw_path = next(
                (p for p in (obj.text(f) for f in MEDIA_PATH_FIELDS) if p), None
            )
            if raw_path is None:
                logger.debug("Media %s has no file path, skipped", obj.key.value)
                continue
            path = Path(raw_path)
            kind = MediaKind.IMAGE if obj.flag("IsStill") else MediaKind.from_extension(path.suffix)
            ticks_per_frame = obj.int_value("FrameRate")
            proxy = arena.follow(obj, "ProxyMedia")
            media[obj.key.value] = MediaItem(
                object_id=obj.key.value,
                path=path,
                title=obj.text("Title"),
                kind=kind,
                duration_ticks=_non_negative(obj.int_value("Duration")),
                frame_rate=FrameRate(ticks_per_frame=ticks_per_frame)
                if ticks_per_frame and ticks_per_frame > 0
                else None,
                proxy_id=proxy.key.value if proxy is not None and proxy.tag == "Media" else None,
                is_proxy=obj.key.value in proxy_ids,
            )

        # A proxy without a path cannot be linked
        return {
            k: m.model_copy(update={"proxy_id": None})
            if m.proxy_id is not None and m.proxy_id not in media
            else m
            for k, m in media.items()
        }

    # ------------------------------------------------------------------
    # Project panel
    # ------------------------------------------------------------------

    def _build_project_panel(
        self, arena: ObjectArena, media: dict[str, MediaItem]
    ) -> tuple[dict[str, Bin], dict[str, ProjectItem]]:
        bin_objects = arena.objects(*BIN_TAGS)
        parents: dict[str, str] = {}
        item_bins: dict[str, str] = {}
        for obj in bin_objects:
            for child in arena.follow_all(obj, "ProjectItemContainer/Items/Item"):
                if child.tag in BIN_TAGS:
                    parents.setdefault(child.key.value, obj.key.value)
                else:
                    item_bins.setdefault(child.key.value, obj.key.value)

        names = {
            obj.key.value: obj.text("ProjectItem/Name") or obj.text("Name") or ""
            for obj in bin_objects
        }
        roots = {obj.key.value for obj in bin_objects if obj.tag == "RootProjectItem"}

        def bin_path(bin_id: str) -> str:
            parts: list[str] = []
            seen: set[str] = set()
            current: str | None = bin_id
            while current is not None and current not in roots and current not in seen:
                seen.add(current)
                parts.append(names.get(current, ""))
                current = parents.get(current)
            return "/".join(reversed(parts))

        bins: dict[str, Bin] = {}
        for obj in bin_objects:
            bin_id = obj.key.value
            bins[bin_id] = Bin(
                object_id=bin_id,
                name=names[bin_id],
                parent_id=parents.get(bin_id),
                path=bin_path(bin_id),
                is_root=bin_id in roots,
            )

        project_items: dict[str, ProjectItem] = {}
        for obj in arena.objects("ClipProjectItem"):
            master = arena.follow(obj, "MasterClip")
            media_ids: list[str] = []
            for clip_obj in arena.follow_all(master, "Clips/Clip"):
                source = arena.follow(clip_obj, "Clip/Source")
                media_obj = arena.follow(source, "MediaSource/Media")
                if media_obj is not None and media_obj.key.value in media:
                    if media_obj.key.value not in media_ids:
                        media_ids.append(media_obj.key.value)
            project_items[obj.key.value] = ProjectItem(
                object_id=obj.key.value,
                name=obj.text("ProjectItem/Name") or obj.text("Name") or "",
                bin_id=item_bins.get(obj.key.value),
                media_ids=tuple(media_ids),
            )
        return bins, project_items

    # ------------------------------------------------------------------
    # Sequences
    # ------------------------------------------------------------------

    def _build_sequences(
        self, arena: ObjectArena, media: dict[str, MediaItem]
    ) -> dict[str, Sequence]:
        sequences: dict[str, Sequence] = {}
        for obj in arena.objects("Sequence"):
            if obj.element.get("ClassID") != SEQUENCE_CLASS_ID:
                logger.debug(
                    "Skipping Sequence-tagged object %s with ClassID %s",
                    obj.key.value,
                    obj.element.get("ClassID"),
                )
                continue
            sequences[obj.key.value] = self._build_sequence(arena, obj, media)
        return sequences

    def _build_sequence(
        self, arena: ObjectArena, obj: XmlObject, media: dict[str, MediaItem]
    ) -> Sequence:
        sequence_id = obj.key.value
        frame_rate: FrameRate | None = None
        video_tracks: list[Track] = []
        audio_tracks: list[Track] = []

        for group in arena.follow_all(obj, "TrackGroups/TrackGroup/Second"):
            is_video = group.tag == "VideoTrackGroup"
            if group.tag not in ("VideoTrackGroup", "AudioTrackGroup"):
                continue
            ticks_per_frame = group.int_value("TrackGroup/FrameRate")
            if is_video and frame_rate is None and ticks_per_frame and ticks_per_frame > 0:
                frame_rate = FrameRate(ticks_per_frame=ticks_per_frame)
            target = video_tracks if is_video else audio_tracks
            for track_obj in arena.follow_all(group, "TrackGroup/Tracks/Track"):
                clips = [
                    self._build_clip(arena, item, sequence_id, track_obj.key.value, is_video, media)
                    for item in arena.follow_all(
                        track_obj, "ClipTrack/ClipItems/TrackItems/TrackItem"
                    )
                ]
                target.append(
                    Track(
                        object_id=track_obj.key.value,
                        index=len(target),
                        is_video=is_video,
                        clips=tuple(clips),
                    )
                )

        duration = obj.int_value(".//MZ.OutPoint", 0) or 0
        return Sequence(
            object_id=sequence_id,
            name=obj.text("Name") or f"Sequence {sequence_id}",
            duration_ticks=max(duration, 0),
            frame_rate=frame_rate or FrameRate(),
            video_tracks=tuple(video_tracks),
            audio_tracks=tuple(audio_tracks),
        )

    def _build_clip(
        self,
        arena: ObjectArena,
        item: XmlObject,
        sequence_id: str,
        track_id: str,
        is_video: bool,
        media: dict[str, MediaItem],
    ) -> Clip:
        start = item.int_value("ClipTrackItem/TrackItem/Start", 0) or 0
        end = item.int_value("ClipTrackItem/TrackItem/End", start) or start
        position = TimeRange.from_bounds(start, end)

        subclip = arena.follow(item, "ClipTrackItem/SubClip")
        clip_obj = arena.follow(subclip, "Clip")

        fields: dict = {
            "object_id": item.key.value,
            "name": (subclip.text("Name") if subclip is not None else None) or "",
            "sequence_id": sequence_id,
            "track_id": track_id,
            "is_video": is_video,
            "position": position,
            "source": TimeRange(start_ticks=0, end_ticks=position.duration_ticks),
        }
        if clip_obj is None:
            return Clip(**fields)

        fields["source_clip_id"] = clip_obj.key.value
        in_point = clip_obj.int_value("Clip/InPoint", 0) or 0
        out_point = clip_obj.int_value("Clip/OutPoint")
        if in_point > MAX_REASONABLE_IN_POINT:
            logger.warning(
                "Clip %s has unreasonable in-point %d, using its timeline length",
                item.key.value,
                in_point,
            )
            in_point, out_point = 0, position.duration_ticks
        if out_point is None:
            out_point = in_point + position.duration_ticks
        fields["source"] = TimeRange.from_bounds(in_point, out_point)

        source = arena.follow(clip_obj, "Clip/Source")
        if source is None:
            return Clip(**fields)
        fields["media_source_id"] = source.key.value

        if source.tag in MEDIA_SOURCE_TAGS:
            media_obj = arena.follow(source, "MediaSource/Media")
            if media_obj is not None and media_obj.key.value in media:
                fields["kind"] = ClipKind.MEDIA
                fields["media_id"] = media_obj.key.value
        elif source.tag in SEQUENCE_SOURCE_TAGS:
            nested = arena.follow(source, "SequenceSource/Sequence")
            if nested is not None:
                is_multicam = source.flag("SequenceSource/MultiCam")
                fields["kind"] = ClipKind.MULTICAM if is_multicam else ClipKind.NESTED
                fields["sequence_ref"] = nested.key.value
                fields["selected_angle"] = max(
                    source.int_value("SequenceSource/SelectedAngle", 0) or 0, 0
                )
        return Clip(**fields)


def _non_negative(value: int | None) -> int | None:
    if value is None or value < 0:
        return None
    return value
