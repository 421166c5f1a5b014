"""Media service implementation using FFmpeg."""

import json
import logging
import shutil
import subprocess
import threading
import time
from pathlib import Path

from pcon.config import settings
from pcon.errors import CancellationRequested, EncoderFailure, EncoderUnavailable
from pcon.models.media import MediaInfo, StreamInfo
from pcon.models.options import TranscodePreset
from pcon.models.timeline import TimeRange

logger = logging.getLogger(__name__)

PRESET_ARGS: dict[TranscodePreset, list[str]] = {
    TranscodePreset.PRORES_422_LT: ["-c:v", "prores_ks", "-profile:v", "1", "-c:a", "pcm_s24le"],
    TranscodePreset.PRORES_422: ["-c:v", "prores_ks", "-profile:v", "2", "-c:a", "pcm_s24le"],
    TranscodePreset.PRORES_422_HQ: ["-c:v", "prores_ks", "-profile:v", "3", "-c:a", "pcm_s24le"],
    TranscodePreset.PRORES_4444: ["-c:v", "prores_ks", "-profile:v", "4", "-c:a", "pcm_s24le"],
    TranscodePreset.DNXHD: ["-c:v", "dnxhd", "-b:v", "185M", "-c:a", "pcm_s24le"],
    TranscodePreset.DNXHR: ["-c:v", "dnxhd", "-profile:v", "dnxhr_hq", "-c:a", "pcm_s24le"],
    TranscodePreset.H264_MEDIUM: [
        "-c:v", "libx264", "-preset", "medium", "-crf", "23", "-c:a", "aac", "-b:a", "192k",
    ],
    TranscodePreset.H264_HIGH: [
        "-c:v", "libx264", "-preset", "slow", "-crf", "18", "-c:a", "aac", "-b:a", "320k",
    ],
    TranscodePreset.H265_MEDIUM: [
        "-c:v", "libx265", "-preset", "medium", "-crf", "23", "-c:a", "aac", "-b:a", "192k",
    ],
    TranscodePreset.H265_HIGH: [
        "-c:v", "libx265", "-preset", "slow", "-crf", "18", "-c:a", "aac", "-b:a", "320k",
    ],
}

# Codecs that survive a stream-copy cut
LOSSLESS_VIDEO_CODECS = {
    "prores", "prores_ks", "dnxhd", "dnxhr", "h264", "avc", "h265", "hevc",
    "mjpeg", "jpeg2000", "cineform", "cfhd", "v210", "v410", "rawvideo",
    "png", "tiff", "dpx", "exr",
}
LOSSLESS_AUDIO_CODECS = {"aac", "mp3", "flac", "alac"}


def is_lossless_trimmable(info: MediaInfo) -> bool:
    """True when every audio/video stream may be cut with ``-c copy``."""
    codecs = info.av_codecs
    if not codecs:
        return False
    for stream in info.streams:
        name = (stream.codec_name or "").lower()
        if stream.codec_type == "video" and name not in LOSSLESS_VIDEO_CODECS:
            return False
        if stream.codec_type == "audio" and not (
            name.startswith("pcm_") or name in LOSSLESS_AUDIO_CODECS
        ):
            return False
    return True


def _seconds(value: float) -> str:
    return f"{value:.6f}"


class FFmpegService:
    """FFmpeg-based media operations service.

    Args:
        ffmpeg_path: ffmpeg binary (name on PATH or absolute path)
        ffprobe_path: ffprobe binary
        poll_interval: How often a running process checks for cancellation
        timeout: Per-invocation timeout in seconds
    """

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        ffprobe_path: str | None = None,
        poll_interval: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path
        self.poll_interval = poll_interval or settings.cancel_poll_interval
        self.timeout = timeout if timeout is not None else settings.encoder_timeout_seconds

    def check_availability(self) -> str:
        """Return the first line of ``ffmpeg -version``."""
        binary = shutil.which(self.ffmpeg_path) or self.ffmpeg_path
        try:
            result = subprocess.run(
                [binary, "-version"], capture_output=True, text=True, timeout=10
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise EncoderUnavailable(f"FFmpeg not found. Please install FFmpeg ({e})") from e
        if result.returncode != 0:
            raise EncoderUnavailable(f"ffmpeg -version failed: {result.stderr.strip()}")
        first_line = next(iter(result.stdout.splitlines()), "")
        return first_line or "Unknown version"

    def get_media_info(self, path: Path) -> MediaInfo:
        """Extract media information using ffprobe.

        Args:
            path: Path to the media file

        Returns:
            MediaInfo with duration, resolution, fps, streams
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
        except OSError as e:
            raise EncoderUnavailable(f"ffprobe could not be started: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise EncoderFailure(str(path), "ffprobe timed out") from e

        if result.returncode != 0:
            raise EncoderFailure(str(path), f"ffprobe failed: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise EncoderFailure(str(path), f"Unreadable ffprobe output: {e}") from e
        return parse_probe_output(data)

    def trim_media(
        self,
        input_path: Path,
        output_path: Path,
        time_range: TimeRange,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Stream-copy ``time_range`` of the input.

        Seeking happens after ``-i`` so cuts are accurate under stream copy.
        """
        start, end = time_range.to_seconds()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-ss", _seconds(start),
            "-t", _seconds(end - start),
            "-c", "copy",
            # data streams (timecode, rtmd) often cannot be muxed
            "-map", "0:v?",
            "-map", "0:a?",
            "-avoid_negative_ts", "make_zero",
            "-reset_timestamps", "1",
            str(output_path),
        ]
        self._run(cmd, input_path, cancel_event)
        return output_path

    def transcode_media(
        self,
        input_path: Path,
        output_path: Path,
        preset: TranscodePreset,
        time_range: TimeRange | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Path:
        """Re-encode the input with ``preset``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = [self.ffmpeg_path, "-y"]
        if time_range is not None:
            start, end = time_range.to_seconds()
            cmd += ["-ss", _seconds(start), "-i", str(input_path), "-t", _seconds(end - start)]
        else:
            cmd += ["-i", str(input_path)]
        cmd += PRESET_ARGS[preset]
        cmd.append(str(output_path))

        self._run(cmd, input_path, cancel_event)
        return output_path

    def _run(
        self, cmd: list[str], input_path: Path, cancel_event: threading.Event | None
    ) -> None:
        """Run an ffmpeg command, killing it when cancellation is requested."""
        logger.info("Running: %s", " ".join(cmd))
        try:
            process = subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
            )
        except OSError as e:
            raise EncoderUnavailable(f"ffmpeg could not be started: {e}") from e

        started = time.monotonic()
        while True:
            try:
                _, stderr = process.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    process.kill()
                    process.communicate()
                    raise CancellationRequested(f"Cancelled while processing {input_path}")
                if self.timeout is not None and time.monotonic() - started > self.timeout:
                    process.kill()
                    process.communicate()
                    raise EncoderFailure(
                        str(input_path), f"ffmpeg timed out after {self.timeout:.0f}s"
                    )

        if process.returncode != 0:
            tail = (stderr or "").strip()[-1000:]
            raise EncoderFailure(str(input_path), f"ffmpeg failed: {tail}")


def parse_probe_output(data: dict) -> MediaInfo:
    """Build ``MediaInfo`` from ffprobe's JSON."""
    fmt = data.get("format", {})
    duration_sec = float(fmt.get("duration") or 0)

    width = None
    height = None
    fps = None
    sample_rate = None
    streams: list[StreamInfo] = []

    for index, stream in enumerate(data.get("streams", [])):
        codec_type = stream.get("codec_type") or "unknown"
        streams.append(
            StreamInfo(
                index=stream.get("index", index),
                codec_type=codec_type,
                codec_name=stream.get("codec_name"),
            )
        )
        if codec_type == "video" and width is None:
            width = stream.get("width")
            height = stream.get("height")
            # "30/1" or "30000/1001"
            fps_str = stream.get("r_frame_rate", "0/1")
            if "/" in fps_str:
                num, den = fps_str.split("/")
                fps = float(num) / float(den) if float(den) != 0 else None
        elif codec_type == "audio" and sample_rate is None:
            sample_rate = int(stream.get("sample_rate", 0)) or None

    bit_rate = fmt.get("bit_rate")
    return MediaInfo(
        duration_ms=int(duration_sec * 1000),
        width=width,
        height=height,
        fps=fps,
        sample_rate=sample_rate,
        format_name=fmt.get("format_name"),
        bit_rate=int(bit_rate) if bit_rate and str(bit_rate).isdigit() else None,
        streams=streams,
    )
