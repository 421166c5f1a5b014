"""Shared fixtures: a Premiere project builder and a fake encoder."""

from __future__ import annotations

import gzip
import threading
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

from pcon.models.media import MediaInfo, StreamInfo
from pcon.models.options import TranscodePreset
from pcon.models.timeline import TICKS_PER_SECOND, TimeRange
from pcon.services.project_parser import SEQUENCE_CLASS_ID

TPS = TICKS_PER_SECOND
FPS25 = TPS // 25


def ticks(seconds: float) -> int:
    return round(seconds * TPS)


# ---------------------------------------------------------------------------
# Project builder
# ---------------------------------------------------------------------------


class ProjectBuilder:
    """Writes small but structurally faithful .prproj files.

    Every object is a direct child of ``PremiereData``, as in real projects.
    Clip ids returned by ``add_clip`` are the track item ids the parser uses.
    """

    def __init__(self, base_dir: Path, version: int = 43) -> None:
        self.base_dir = base_dir
        self.root = ET.Element("PremiereData", Version=str(version))
        self._next_id = 1
        self._next_uid = 1
        self._groups: dict[tuple[str, bool], ET.Element] = {}
        self._tracks: dict[str, tuple[ET.Element, bool]] = {}
        self.root_bin = self._bin_element("RootProjectItem", "Root")

    # -- identifiers ---------------------------------------------------

    def _id(self) -> str:
        value = str(self._next_id)
        self._next_id += 1
        return value

    def _uid(self, prefix: str) -> str:
        value = f"{prefix}-{self._next_uid:04d}"
        self._next_uid += 1
        return value

    def _object(self, tag: str, **attrs: str) -> ET.Element:
        return ET.SubElement(self.root, tag, **attrs)

    # -- media ----------------------------------------------------------

    def media_file(self, name: str, size: int = 60_000, folder: str = "footage") -> Path:
        """Create a real file whose content depends on its name."""
        path = self.base_dir / folder / name
        path.parent.mkdir(parents=True, exist_ok=True)
        pattern = name.encode() + b"|"
        path.write_bytes((pattern * (size // len(pattern) + 1))[:size])
        return path

    def add_media(
        self,
        path: Path | str,
        duration: float | None = 60,
        uid: str | None = None,
        frame_rate_ticks: int | None = FPS25,
        is_still: bool = False,
        path_field: str = "ActualMediaFilePath",
    ) -> str:
        uid = uid or self._uid("media")
        element = self._object("Media", ObjectUID=uid)
        ET.SubElement(element, path_field).text = str(path)
        ET.SubElement(element, "Title").text = Path(path).name
        if duration is not None:
            ET.SubElement(element, "Duration").text = str(ticks(duration))
        if frame_rate_ticks:
            ET.SubElement(element, "FrameRate").text = str(frame_rate_ticks)
        if is_still:
            ET.SubElement(element, "IsStill").text = "true"
        return uid

    def add_proxy(self, media_uid: str, path: Path | str, duration: float | None = 60) -> str:
        proxy_uid = self.add_media(path, duration=duration)
        main = self._find_object(media_uid)
        ET.SubElement(main, "ProxyMedia", ObjectURef=proxy_uid)
        return proxy_uid

    # -- project panel ----------------------------------------------------

    def _bin_element(self, tag: str, name: str) -> ET.Element:
        element = self._object(tag, ObjectUID=self._uid("bin"))
        item = ET.SubElement(element, "ProjectItem")
        ET.SubElement(item, "Name").text = name
        container = ET.SubElement(element, "ProjectItemContainer")
        ET.SubElement(container, "Items")
        return element

    def _add_to_bin(self, bin_element: ET.Element, uid: str) -> None:
        items = bin_element.find("ProjectItemContainer/Items")
        ET.SubElement(items, "Item", Index=str(len(items)), ObjectURef=uid)

    def add_bin(self, name: str, parent: str | None = None) -> str:
        element = self._bin_element("BinProjectItem", name)
        parent_element = self._find_object(parent) if parent else self.root_bin
        self._add_to_bin(parent_element, element.get("ObjectUID"))
        return element.get("ObjectUID")

    def add_project_item(self, name: str, media_uid: str, bin_uid: str | None = None) -> str:
        source_id = self._id()
        source = self._object("VideoMediaSource", ObjectID=source_id)
        ET.SubElement(ET.SubElement(source, "MediaSource"), "Media", ObjectURef=media_uid)

        clip_id = self._id()
        clip = self._object("VideoClip", ObjectID=clip_id)
        ET.SubElement(ET.SubElement(clip, "Clip"), "Source", ObjectRef=source_id)

        master_uid = self._uid("master")
        master = self._object("MasterClip", ObjectUID=master_uid)
        ET.SubElement(ET.SubElement(master, "Clips"), "Clip", Index="0", ObjectRef=clip_id)

        item_uid = self._uid("item")
        item = self._object("ClipProjectItem", ObjectUID=item_uid)
        ET.SubElement(ET.SubElement(item, "ProjectItem"), "Name").text = name
        ET.SubElement(item, "MasterClip", ObjectURef=master_uid)

        bin_element = self._find_object(bin_uid) if bin_uid else self.root_bin
        self._add_to_bin(bin_element, item_uid)
        return item_uid

    # -- sequences --------------------------------------------------------

    def add_sequence(
        self,
        name: str,
        duration: float = 120,
        frame_rate_ticks: int = FPS25,
        uid: str | None = None,
        class_id: str = SEQUENCE_CLASS_ID,
    ) -> str:
        uid = uid or self._uid("seq")
        sequence = self._object("Sequence", ObjectUID=uid, ClassID=class_id)
        ET.SubElement(sequence, "Name").text = name
        groups = ET.SubElement(sequence, "TrackGroups")
        for is_video in (True, False):
            group_id = self._id()
            group = self._object(
                "VideoTrackGroup" if is_video else "AudioTrackGroup", ObjectID=group_id
            )
            track_group = ET.SubElement(group, "TrackGroup")
            ET.SubElement(track_group, "Tracks")
            ET.SubElement(track_group, "FrameRate").text = str(frame_rate_ticks)
            self._groups[(uid, is_video)] = group
            ET.SubElement(ET.SubElement(groups, "TrackGroup"), "Second", ObjectRef=group_id)
        props = ET.SubElement(ET.SubElement(sequence, "Node"), "Properties")
        ET.SubElement(props, "MZ.OutPoint").text = str(ticks(duration))
        return uid

    def add_track(self, sequence_uid: str, video: bool = True) -> str:
        track_id = self._id()
        track = self._object("VideoClipTrack" if video else "AudioClipTrack", ObjectID=track_id)
        clip_items = ET.SubElement(ET.SubElement(track, "ClipTrack"), "ClipItems")
        ET.SubElement(clip_items, "TrackItems")
        tracks = self._groups[(sequence_uid, video)].find("TrackGroup/Tracks")
        ET.SubElement(tracks, "Track", Index=str(len(tracks)), ObjectRef=track_id)
        self._tracks[track_id] = (track, video)
        return track_id

    def add_clip(
        self,
        track_id: str,
        start: float,
        end: float,
        media: str | None = None,
        source_in: float = 0,
        source_out: float | None = None,
        nested: str | None = None,
        multicam: str | None = None,
        selected_angle: int = 0,
        in_point_ticks: int | None = None,
    ) -> str:
        track, video = self._tracks[track_id]
        prefix = "Video" if video else "Audio"

        source_id = self._id()
        if media is not None:
            source = self._object(f"{prefix}MediaSource", ObjectID=source_id)
            ET.SubElement(ET.SubElement(source, "MediaSource"), "Media", ObjectURef=media)
        else:
            source = self._object(f"{prefix}SequenceSource", ObjectID=source_id)
            seq_source = ET.SubElement(source, "SequenceSource")
            ET.SubElement(seq_source, "Sequence", ObjectURef=nested or multicam)
            if multicam is not None:
                ET.SubElement(seq_source, "MultiCam").text = "true"
                ET.SubElement(seq_source, "SelectedAngle").text = str(selected_angle)

        if source_out is None:
            source_out = source_in + (end - start)
        clip_id = self._id()
        clip = self._object(f"{prefix}Clip", ObjectID=clip_id)
        clip_body = ET.SubElement(clip, "Clip")
        ET.SubElement(clip_body, "Source", ObjectRef=source_id)
        in_ticks = ticks(source_in) if in_point_ticks is None else in_point_ticks
        ET.SubElement(clip_body, "InPoint").text = str(in_ticks)
        if in_point_ticks is None:
            ET.SubElement(clip_body, "OutPoint").text = str(ticks(source_out))

        subclip_id = self._id()
        subclip = self._object("SubClip", ObjectID=subclip_id)
        ET.SubElement(subclip, "Clip", ObjectRef=clip_id)
        ET.SubElement(subclip, "Name").text = f"clip {clip_id}"

        item_id = self._id()
        item = self._object(f"{prefix}ClipTrackItem", ObjectID=item_id)
        body = ET.SubElement(item, "ClipTrackItem")
        track_item = ET.SubElement(body, "TrackItem")
        ET.SubElement(track_item, "Start").text = str(ticks(start))
        ET.SubElement(track_item, "End").text = str(ticks(end))
        ET.SubElement(body, "SubClip", ObjectRef=subclip_id)

        items = track.find("ClipTrack/ClipItems/TrackItems")
        ET.SubElement(items, "TrackItem", Index=str(len(items)), ObjectRef=item_id)
        return item_id

    # -- output -----------------------------------------------------------

    def _find_object(self, key: str) -> ET.Element:
        for element in self.root:
            if key in (element.get("ObjectUID"), element.get("ObjectID")):
                return element
        raise KeyError(key)

    def to_bytes(self) -> bytes:
        return gzip.compress(ET.tostring(self.root, encoding="utf-8", xml_declaration=True))

    def write(self, name: str = "project.prproj") -> Path:
        path = self.base_dir / name
        path.write_bytes(self.to_bytes())
        return path


# ---------------------------------------------------------------------------
# Fake encoder
# ---------------------------------------------------------------------------


def probe_info(video: str | None = "h264", audio: str | None = "aac") -> MediaInfo:
    streams = []
    if video:
        streams.append(StreamInfo(index=len(streams), codec_type="video", codec_name=video))
    if audio:
        streams.append(StreamInfo(index=len(streams), codec_type="audio", codec_name=audio))
    return MediaInfo(
        duration_ms=60_000,
        width=1920 if video else None,
        height=1080 if video else None,
        fps=25.0 if video else None,
        sample_rate=48000 if audio else None,
        streams=streams,
    )


class FakeEncoder:
    """Records calls and writes small output files; no ffmpeg needed.

    ``codecs`` maps a file name to the ``MediaInfo`` its probe returns.
    ``on_output`` runs after every written output (used to trigger cancellation).
    """

    def __init__(
        self,
        codecs: dict[str, MediaInfo] | None = None,
        fail_on: set[str] | None = None,
        on_output: Callable[[int], None] | None = None,
    ) -> None:
        self.codecs = codecs or {}
        self.fail_on = fail_on or set()
        self.on_output = on_output
        self.calls: list[tuple] = []
        self._lock = threading.Lock()

    def check_availability(self) -> str:
        return "ffmpeg version 6.1-fake Copyright (c) 2000-2023 the FFmpeg developers"

    def get_media_info(self, path: Path) -> MediaInfo:
        self.calls.append(("probe", Path(path).name))
        return self.codecs.get(Path(path).name, probe_info())

    def trim_media(
        self,
        input_path: Path,
        output_path: Path,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        return self._write("trim", input_path, output_path, time_range)

    def transcode_media(
        self,
        input_path: Path,
        output_path: Path,
        preset: TranscodePreset,
        time_range: TimeRange | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        return self._write("transcode", input_path, output_path, time_range, preset)

    def _write(self, kind, input_path, output_path, time_range, preset=None) -> Path:
        from pcon.errors import EncoderFailure

        if Path(input_path).name in self.fail_on:
            raise EncoderFailure(str(input_path), "ffmpeg failed: simulated")
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        seconds = time_range.duration_seconds if time_range is not None else 60
        output_path.write_bytes(b"o" * max(int(seconds * 100), 1))
        with self._lock:
            self.calls.append((kind, Path(input_path).name, output_path.name, time_range, preset))
            count = sum(1 for c in self.calls if c[0] in ("trim", "transcode"))
        if self.on_output is not None:
            self.on_output(count)
        return output_path

    @property
    def outputs(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("trim", "transcode")]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def builder(tmp_path: Path) -> ProjectBuilder:
    return ProjectBuilder(tmp_path)


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def two_clip_project(builder: ProjectBuilder) -> tuple[ProjectBuilder, dict[str, str]]:
    """One sequence, one 60 s media used at [0,10) and [20,30)."""
    path = builder.media_file("interview.mov")
    media = builder.add_media(path, duration=60)
    unused_path = builder.media_file("broll.mov", size=30_000)
    unused = builder.add_media(unused_path, duration=30)
    seq = builder.add_sequence("Main Edit", duration=20)
    track = builder.add_track(seq)
    first = builder.add_clip(track, 0, 10, media=media, source_in=0)
    second = builder.add_clip(track, 10, 20, media=media, source_in=20)
    return builder, {
        "media": media,
        "unused": unused,
        "sequence": seq,
        "track": track,
        "first": first,
        "second": second,
    }
