"""Tests for the FFmpeg media service."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import probe_info, ticks
from pcon.errors import EncoderUnavailable
from pcon.models.options import TranscodePreset
from pcon.models.timeline import TimeRange
from pcon.services.media import FFmpegService, is_lossless_trimmable, parse_probe_output

PROBE_OUTPUT = {
    "format": {"duration": "12.480000", "format_name": "mov,mp4,m4a", "bit_rate": "8000000"},
    "streams": [
        {
            "index": 0,
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30000/1001",
        },
        {"index": 1, "codec_type": "audio", "codec_name": "aac", "sample_rate": "48000"},
        {"index": 2, "codec_type": "data", "codec_name": None},
    ],
}


class TestParseProbeOutput:
    def test_full(self) -> None:
        info = parse_probe_output(PROBE_OUTPUT)

        assert info.duration_ms == 12480
        assert info.resolution == "1920x1080"
        assert info.fps == pytest.approx(29.97, rel=1e-3)
        assert info.sample_rate == 48000
        assert info.format_name == "mov,mp4,m4a"
        assert info.bit_rate == 8_000_000
        assert info.av_codecs == ["h264", "aac"]
        assert len(info.streams) == 3

    def test_empty(self) -> None:
        info = parse_probe_output({})
        assert info.duration_ms == 0
        assert info.resolution is None
        assert info.streams == []


class TestLosslessTrim:
    @pytest.mark.parametrize(
        "video,audio,expected",
        [
            ("h264", "aac", True),
            ("prores", "pcm_s24le", True),
            ("hevc", None, True),
            (None, "pcm_s16le", True),
            ("mpeg2video", "aac", False),
            ("h264", "opus", False),
            (None, None, False),
        ],
    )
    def test_codecs(self, video, audio, expected) -> None:
        assert is_lossless_trimmable(probe_info(video=video, audio=audio)) is expected


class TestCommands:
    @pytest.fixture
    def service(self, monkeypatch: pytest.MonkeyPatch):
        service = FFmpegService(ffmpeg_path="ffmpeg", ffprobe_path="ffprobe")
        commands: list[list[str]] = []
        monkeypatch.setattr(service, "_run", lambda cmd, path, cancel: commands.append(cmd))
        service.commands = commands
        return service

    def test_trim_stream_copies_after_input(self, service, tmp_path: Path) -> None:
        output = service.trim_media(
            tmp_path / "in.mov",
            tmp_path / "out" / "in.mov",
            TimeRange(start_ticks=ticks(2), end_ticks=ticks(7.5)),
        )

        (cmd,) = service.commands
        assert output == tmp_path / "out" / "in.mov"
        assert output.parent.is_dir()
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd.index("-ss") > cmd.index("-i")
        assert cmd[cmd.index("-ss") + 1] == "2.000000"
        assert cmd[cmd.index("-t") + 1] == "5.500000"
        assert cmd[-1] == str(output)

    def test_transcode_with_range(self, service, tmp_path: Path) -> None:
        service.transcode_media(
            tmp_path / "in.mov",
            tmp_path / "in.mp4",
            TranscodePreset.H264_MEDIUM,
            TimeRange(start_ticks=ticks(10), end_ticks=ticks(20)),
        )

        (cmd,) = service.commands
        assert cmd.index("-ss") < cmd.index("-i")
        assert cmd[cmd.index("-t") + 1] == "10.000000"
        assert cmd[cmd.index("-c:v") + 1] == "libx264"

    def test_transcode_whole_file(self, service, tmp_path: Path) -> None:
        service.transcode_media(tmp_path / "in.mov", tmp_path / "in_hq.mov", TranscodePreset.PRORES_422_HQ)

        (cmd,) = service.commands
        assert "-ss" not in cmd
        assert cmd[cmd.index("-profile:v") + 1] == "3"


def test_every_preset_has_arguments() -> None:
    from pcon.services.media import PRESET_ARGS

    assert set(PRESET_ARGS) == set(TranscodePreset)


def test_missing_binary_is_unavailable(tmp_path: Path) -> None:
    service = FFmpegService(ffmpeg_path=str(tmp_path / "no-such-ffmpeg"))
    with pytest.raises(EncoderUnavailable):
        service.check_availability()
