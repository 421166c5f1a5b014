"""Tests for the pcon command-line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import FakeEncoder
from pcon import cli
from pcon.engine import ConsolidationEngine


@pytest.fixture(autouse=True)
def fake_engine(monkeypatch: pytest.MonkeyPatch) -> FakeEncoder:
    encoder = FakeEncoder()
    monkeypatch.setattr(cli, "ConsolidationEngine", lambda: ConsolidationEngine(encoder=encoder))
    return encoder


@pytest.fixture
def project(two_clip_project):
    builder, ids = two_clip_project
    return str(builder.write()), ids, builder


class TestQueries:
    def test_info(self, project, capsys: pytest.CaptureFixture[str]) -> None:
        path, _, _ = project
        cli.main(["info", path])
        out = capsys.readouterr().out
        assert "Project: project (version 43)" in out
        assert "Sequences: 1" in out

    def test_sequences_json(self, project, capsys: pytest.CaptureFixture[str]) -> None:
        path, ids, _ = project
        cli.main(["--json", "sequences", path])
        (sequence,) = json.loads(capsys.readouterr().out)
        assert sequence["object_id"] == ids["sequence"]

    def test_analyze(self, project, capsys: pytest.CaptureFixture[str]) -> None:
        path, _, _ = project
        cli.main(["analyze", path, "--handles", "250"])
        out = capsys.readouterr().out
        assert "Used:   1 media" in out
        assert "interview.mov: 2 clip(s), 1 range(s) within 0.00s-40.00s" in out

    def test_estimate(self, project, capsys: pytest.CaptureFixture[str]) -> None:
        path, _, builder = project
        cli.main(["--json", "estimate", path, "-o", str(builder.base_dir / "out")])
        assert json.loads(capsys.readouterr().out)["bytes"] == 30_000

    def test_missing_project(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["info", str(tmp_path / "nope.prproj")])
        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err

    def test_no_command(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])


class TestConsolidate:
    def test_copy(self, project, capsys: pytest.CaptureFixture[str], fake_engine) -> None:
        path, _, builder = project
        output = builder.base_dir / "out"

        cli.main(["consolidate", path, "-o", str(output), "--mode", "copy"])

        out = capsys.readouterr().out
        assert "Consolidation started:" in out
        assert "Done:" in out
        assert (output / "Media" / "interview.mov").is_file()
        assert (output / "project.prproj").is_file()
        assert fake_engine.outputs == []

    def test_trim(self, project, capsys: pytest.CaptureFixture[str], fake_engine) -> None:
        path, _, builder = project
        cli.main(["consolidate", path, "-o", str(builder.base_dir / "out"), "--optimize", "minimize"])
        assert "Files: 2/2" in capsys.readouterr().out
        assert len(fake_engine.outputs) == 2

    def test_unwritable_output(self, project, capsys: pytest.CaptureFixture[str]) -> None:
        path, _, builder = project
        blocker = builder.base_dir / "blocker"
        blocker.write_text("x")
        with pytest.raises(SystemExit):
            cli.main(["consolidate", path, "-o", str(blocker)])
        assert "not writable" in capsys.readouterr().err


def test_check_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["check-output", str(tmp_path)])
    assert "ok" in capsys.readouterr().out


def test_check_ffmpeg(capsys: pytest.CaptureFixture[str]) -> None:
    cli.main(["check-ffmpeg"])
    assert capsys.readouterr().out.startswith("ffmpeg version")
