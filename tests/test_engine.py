"""Tests for the consolidation engine operations."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeEncoder, ProjectBuilder, probe_info
from pcon.engine import ConsolidationEngine
from pcon.errors import (
    CorruptArchive,
    EncoderUnavailable,
    MediaNotFoundError,
    ProjectNotFoundError,
    SequenceNotFoundError,
)
from pcon.jobs.models import ConsolidationStatus
from pcon.models.options import ConsolidationOptions, OptimizationMode


@pytest.fixture
def engine(fake_encoder: FakeEncoder):
    engine = ConsolidationEngine(encoder=fake_encoder)
    yield engine
    engine.shutdown()


@pytest.fixture
def project(two_clip_project) -> tuple[Path, dict[str, str], ProjectBuilder]:
    builder, ids = two_clip_project
    return builder.write(), ids, builder


class TestProjectQueries:
    def test_project_info(self, engine: ConsolidationEngine, project) -> None:
        path, _, _ = project
        info = engine.get_project_info(path)

        assert info.name == "project"
        assert info.file_path == str(path.resolve())
        assert info.version == 43
        assert info.sequence_count == 1
        assert info.media_count == 2
        assert info.bin_count == 0
        assert info.unresolved_count == 0

    def test_sequences(self, engine: ConsolidationEngine, project) -> None:
        path, ids, _ = project
        (sequence,) = engine.get_sequences(path)

        assert sequence.object_id == ids["sequence"]
        assert sequence.name == "Main Edit"
        assert sequence.duration_seconds == 20.0
        assert sequence.frame_rate == 25.0
        assert sequence.video_track_count == 1
        assert sequence.audio_track_count == 0
        assert sequence.nested_count == 0

    def test_media_items(self, engine: ConsolidationEngine, project) -> None:
        path, ids, _ = project
        items = engine.get_media_items(path)

        assert [i.object_id for i in items] == [ids["media"], ids["unused"]]
        assert items[0].file_name == "interview.mov"
        assert items[0].file_size == 60_000
        assert items[0].file_size_formatted == "58.59 KB"
        assert items[0].is_online
        assert items[0].media_type == "video"
        assert not items[0].has_proxy

    def test_missing_project(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        with pytest.raises(ProjectNotFoundError):
            engine.get_project_info(tmp_path / "nope.prproj")

    def test_corrupt_project(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        path = tmp_path / "bad.prproj"
        path.write_bytes(b"plain text")
        with pytest.raises(CorruptArchive):
            engine.get_sequences(path)

    def test_cache_reparses_changed_file(self, engine: ConsolidationEngine, project) -> None:
        path, _, builder = project
        assert engine.open_project(path) is engine.open_project(path)

        builder.add_sequence("Second")
        builder.write()
        assert len(engine.get_sequences(path)) == 2


class TestAnalysis:
    def test_analyze(self, engine: ConsolidationEngine, project) -> None:
        path, ids, _ = project
        summary = engine.analyze_media_usage(path, [ids["sequence"]])

        assert summary.used_count == 1
        assert summary.unused_count == 1
        assert summary.unused_media == [ids["unused"]]
        assert summary.used_size == 60_000
        assert summary.unused_size == 30_000
        (used,) = summary.used_media
        assert used.usage_count == 2
        assert used.time_range_seconds == (0.0, 30.0)
        assert used.ranges_seconds == [(0.0, 10.0), (20.0, 30.0)]
        assert used.sequences == [ids["sequence"]]

    def test_analyze_with_handles(self, engine: ConsolidationEngine, project) -> None:
        path, _, _ = project
        summary = engine.analyze_media_usage(path, handle_frames=250)
        assert summary.used_media[0].ranges_seconds == [(0.0, 40.0)]

    def test_analyze_unknown_sequence(self, engine: ConsolidationEngine, project) -> None:
        path, _, _ = project
        with pytest.raises(SequenceNotFoundError):
            engine.analyze_media_usage(path, ["seq-nope"])

    def test_estimate(self, engine: ConsolidationEngine, project) -> None:
        path, _, builder = project
        options = ConsolidationOptions(output_path=builder.base_dir / "out")

        first = engine.estimate_output_size(path, options)
        assert first == 30_000
        assert engine.estimate_output_size(path, options) == first
        assert not (builder.base_dir / "out").exists()


class TestConsolidation:
    def test_start_and_wait(self, engine: ConsolidationEngine, project) -> None:
        path, _, builder = project
        options = ConsolidationOptions(
            output_path=builder.base_dir / "out",
            optimization_mode=OptimizationMode.MINIMIZE,
        )

        job_id = engine.start_consolidation(path, options)
        engine.jobs.wait(job_id, timeout=10)
        progress = engine.get_consolidation_progress(job_id)

        assert progress.job_id == job_id
        assert progress.status is ConsolidationStatus.COMPLETED
        assert progress.files_processed == 2
        assert (builder.base_dir / "out" / "Media" / "interview_part02.mov").is_file()
        assert (builder.base_dir / "out" / "project.prproj").is_file()

    def test_fail_fast_on_unknown_sequence(self, engine: ConsolidationEngine, project) -> None:
        path, _, builder = project
        options = ConsolidationOptions(output_path=builder.base_dir / "out", sequences=["x"])
        with pytest.raises(SequenceNotFoundError):
            engine.start_consolidation(path, options)
        assert engine.jobs.list_jobs() == []

    def test_cancel_finished_job_is_noop(self, engine: ConsolidationEngine, project) -> None:
        path, _, builder = project
        job_id = engine.start_consolidation(
            path, ConsolidationOptions(output_path=builder.base_dir / "out")
        )
        engine.jobs.wait(job_id, timeout=10)
        engine.cancel_consolidation(job_id)
        assert engine.get_consolidation_progress(job_id).status is ConsolidationStatus.COMPLETED


class TestEnvironment:
    def test_check_ffmpeg(self, engine: ConsolidationEngine) -> None:
        assert engine.check_ffmpeg().startswith("ffmpeg version")

    def test_check_ffmpeg_missing(self, tmp_path: Path) -> None:
        class Missing(FakeEncoder):
            def check_availability(self) -> str:
                raise EncoderUnavailable("FFmpeg not found")

        engine = ConsolidationEngine(encoder=Missing())
        try:
            with pytest.raises(EncoderUnavailable):
                engine.check_ffmpeg()
        finally:
            engine.shutdown()

    def test_media_metadata(self, tmp_path: Path) -> None:
        media = tmp_path / "clip.mov"
        media.write_bytes(b"m")
        engine = ConsolidationEngine(encoder=FakeEncoder(codecs={"clip.mov": probe_info(audio="pcm_s16le")}))
        try:
            metadata = engine.get_media_metadata(media)
        finally:
            engine.shutdown()

        assert metadata.file_path == str(media)
        assert metadata.info.resolution == "1920x1080"
        assert metadata.lossless_trimmable

    def test_media_metadata_missing(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        with pytest.raises(MediaNotFoundError):
            engine.get_media_metadata(tmp_path / "nope.mov")

    def test_output_path_existing_dir(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        check = engine.validate_output_path(tmp_path)
        assert check.is_valid
        assert check.exists

    def test_output_path_to_create(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        check = engine.validate_output_path(tmp_path / "new" / "deeper")
        assert check.is_valid
        assert not check.exists
        assert check.message == "Will be created"

    def test_output_path_is_file(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("x")
        check = engine.validate_output_path(target)
        assert not check.is_valid
        assert check.message == "Not a directory"

    def test_output_path_under_file(self, engine: ConsolidationEngine, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("x")
        check = engine.validate_output_path(target / "sub")
        assert not check.is_valid
        assert check.message.startswith("Cannot create under")
