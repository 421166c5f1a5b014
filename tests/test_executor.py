"""Tests for the media processing executor."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from conftest import FakeEncoder, ProjectBuilder, probe_info, ticks
from pcon.errors import (
    CancellationRequested,
    EncoderFailure,
    OutputWriteFailure,
    UnsupportedCodecForLosslessTrim,
)
from pcon.jobs.models import Job
from pcon.models.options import (
    ConsolidationOptions,
    LosslessFallback,
    OptimizationMode,
    ProcessingMode,
    TranscodePreset,
)
from pcon.models.plan import OutcomeStatus
from pcon.models.timeline import TimeRange
from pcon.services.executor import MediaProcessingExecutor
from pcon.services.optimizer import plan_consolidation
from pcon.services.project_parser import ProjectParser


def _plan(builder: ProjectBuilder, **option_fields):
    graph = ProjectParser().parse_file(builder.write())
    option_fields.setdefault("output_path", builder.base_dir / "out")
    options = ConsolidationOptions(**option_fields)
    return plan_consolidation(graph, options, fallback_preset=TranscodePreset.PRORES_422)


def _job(plan) -> Job:
    return Job(project_path=Path("project.prproj"), options=plan.options)


class TestTrim:
    def test_stream_copy(self, two_clip_project, fake_encoder: FakeEncoder) -> None:
        builder, _ = two_clip_project
        plan = _plan(builder)
        job = _job(plan)

        report = MediaProcessingExecutor(fake_encoder).run(plan, job, threading.Event())

        assert fake_encoder.outputs == [
            (
                "trim",
                "interview.mov",
                "interview.mov",
                TimeRange(start_ticks=0, end_ticks=ticks(30)),
                None,
            )
        ]
        outcome = report.outcome(0)
        assert outcome.status is OutcomeStatus.DONE
        assert outcome.action is ProcessingMode.TRIM
        assert outcome.output_path == builder.base_dir / "out" / "Media" / "interview.mov"
        assert outcome.output_bytes == 3_000
        assert report.output_bytes == 3_000
        progress = job.progress
        assert progress.files_processed == 1
        assert progress.bytes_processed == plan.bytes_total

    def test_codec_fallback_transcodes(self, two_clip_project) -> None:
        builder, _ = two_clip_project
        encoder = FakeEncoder(codecs={"interview.mov": probe_info(video="mpeg2video")})
        plan = _plan(builder)
        job = _job(plan)

        report = MediaProcessingExecutor(encoder).run(plan, job, threading.Event())

        kind, _, output_name, _, preset = encoder.outputs[0]
        assert kind == "transcode"
        assert preset is TranscodePreset.PRORES_422
        assert output_name == "interview.mov"
        assert report.outcome(0).action is ProcessingMode.TRANSCODE
        assert any("mpeg2video" in w for w in job.progress.warnings)

    def test_codec_fallback_error_policy(self, two_clip_project) -> None:
        builder, _ = two_clip_project
        encoder = FakeEncoder(codecs={"interview.mov": probe_info(audio="opus")})
        plan = _plan(builder)
        job = _job(plan)

        executor = MediaProcessingExecutor(encoder, lossless_fallback=LosslessFallback.ERROR)
        report = executor.run(plan, job, threading.Event())

        assert encoder.outputs == []
        assert report.outcome(0).status is OutcomeStatus.FAILED
        (error,) = job.progress.errors
        assert not error.is_fatal
        assert "opus" in error.error_message
        assert job.progress.files_processed == 1

    def test_options_override_fallback_policy(self, two_clip_project) -> None:
        builder, _ = two_clip_project
        encoder = FakeEncoder(codecs={"interview.mov": probe_info(audio="opus")})
        plan = _plan(builder, lossless_fallback=LosslessFallback.ERROR)

        report = MediaProcessingExecutor(encoder).run(plan, _job(plan), threading.Event())
        assert report.outcome(0).status is OutcomeStatus.FAILED

    def test_transcode_mode_uses_preset_extension(self, two_clip_project, fake_encoder) -> None:
        builder, _ = two_clip_project
        plan = _plan(
            builder,
            processing_mode=ProcessingMode.TRANSCODE,
            transcode_preset=TranscodePreset.H264_HIGH,
        )
        report = MediaProcessingExecutor(fake_encoder).run(plan, _job(plan), threading.Event())

        assert fake_encoder.outputs[0][2] == "interview.mp4"
        assert fake_encoder.outputs[0][4] is TranscodePreset.H264_HIGH
        assert report.outcome(0).output_path.suffix == ".mp4"


class TestCopyAndReference:
    def test_copy_with_sidecar(self, two_clip_project, fake_encoder: FakeEncoder) -> None:
        builder, _ = two_clip_project
        (builder.base_dir / "footage" / "interview.xmp").write_text("<xmp/>")
        plan = _plan(builder, processing_mode=ProcessingMode.COPY)

        report = MediaProcessingExecutor(fake_encoder).run(plan, _job(plan), threading.Event())

        media_dir = builder.base_dir / "out" / "Media"
        assert (media_dir / "interview.mov").read_bytes() == (
            builder.base_dir / "footage" / "interview.mov"
        ).read_bytes()
        assert (media_dir / "interview.xmp").read_text() == "<xmp/>"
        assert report.outcome(0).output_bytes == 60_000
        assert fake_encoder.outputs == []

    def test_no_process(self, two_clip_project, fake_encoder: FakeEncoder) -> None:
        builder, _ = two_clip_project
        plan = _plan(builder, processing_mode=ProcessingMode.NO_PROCESS)
        job = _job(plan)

        report = MediaProcessingExecutor(fake_encoder).run(plan, job, threading.Event())

        outcome = report.outcome(0)
        assert outcome.status is OutcomeStatus.DONE
        assert outcome.output_path == plan.entries[0].source_path
        assert not (builder.base_dir / "out" / "Media" / "interview.mov").exists()
        assert job.progress.files_processed == 1


class TestErrors:
    def _offline_project(self, builder: ProjectBuilder) -> None:
        track = builder.add_track(builder.add_sequence("Edit"))
        builder.add_clip(track, 0, 5, media=builder.add_media(builder.base_dir / "gone.mov"))
        builder.add_clip(track, 5, 10, media=builder.add_media(builder.media_file("here.mov")))

    def test_offline_skipped(self, builder: ProjectBuilder, fake_encoder: FakeEncoder) -> None:
        self._offline_project(builder)
        plan = _plan(builder)
        job = _job(plan)

        report = MediaProcessingExecutor(fake_encoder).run(plan, job, threading.Event())

        assert [o.status for o in report.outcomes] == [OutcomeStatus.SKIPPED, OutcomeStatus.DONE]
        assert any("offline" in w for w in job.progress.warnings)
        assert job.progress.errors == ()

    def test_offline_error(self, builder: ProjectBuilder, fake_encoder: FakeEncoder) -> None:
        self._offline_project(builder)
        plan = _plan(builder, skip_offline_media=False)
        job = _job(plan)

        report = MediaProcessingExecutor(fake_encoder).run(plan, job, threading.Event())

        assert [o.status for o in report.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.DONE]
        assert job.progress.errors[0].error_message == "File is offline"
        assert job.progress.files_processed == 2

    def test_source_removed_after_planning(self, two_clip_project, fake_encoder) -> None:
        builder, _ = two_clip_project
        plan = _plan(builder)
        (builder.base_dir / "footage" / "interview.mov").unlink()

        report = MediaProcessingExecutor(fake_encoder).run(plan, _job(plan), threading.Event())
        assert report.outcome(0).status is OutcomeStatus.SKIPPED

    def test_encoder_failure_is_not_fatal(self, builder: ProjectBuilder) -> None:
        track = builder.add_track(builder.add_sequence("Edit"))
        builder.add_clip(track, 0, 5, media=builder.add_media(builder.media_file("bad.mov")))
        builder.add_clip(track, 5, 10, media=builder.add_media(builder.media_file("good.mov")))
        encoder = FakeEncoder(fail_on={"bad.mov"})
        plan = _plan(builder)
        job = _job(plan)

        report = MediaProcessingExecutor(encoder).run(plan, job, threading.Event())

        assert [o.status for o in report.outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.DONE]
        assert "simulated" in job.progress.errors[0].error_message

    def test_fatal_output_root(self, two_clip_project, fake_encoder: FakeEncoder) -> None:
        builder, _ = two_clip_project
        blocker = builder.base_dir / "not_a_dir"
        blocker.write_text("file")
        plan = _plan(builder, output_path=blocker)
        job = _job(plan)

        with pytest.raises(OutputWriteFailure):
            MediaProcessingExecutor(fake_encoder).run(plan, job, threading.Event())
        assert job.progress.errors[0].is_fatal
        assert fake_encoder.outputs == []

    def test_cancel_before_start(self, two_clip_project, fake_encoder: FakeEncoder) -> None:
        builder, _ = two_clip_project
        plan = _plan(builder)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(CancellationRequested):
            MediaProcessingExecutor(fake_encoder).run(plan, _job(plan), cancel)
        assert fake_encoder.outputs == []

    def test_cancel_between_entries(self, two_clip_project) -> None:
        builder, _ = two_clip_project
        cancel = threading.Event()
        encoder = FakeEncoder(on_output=lambda count: cancel.set())
        plan = _plan(builder, optimization_mode=OptimizationMode.MINIMIZE)
        job = _job(plan)

        with pytest.raises(CancellationRequested):
            MediaProcessingExecutor(encoder).run(plan, job, cancel)
        assert len(encoder.outputs) == 1
        assert job.progress.files_processed == 1


def test_error_classes_carry_fatality() -> None:
    assert OutputWriteFailure("x", "y").is_fatal
    assert not EncoderFailure("x", "y").is_fatal
    assert UnsupportedCodecForLosslessTrim("x", "y", is_fatal=True).is_fatal
