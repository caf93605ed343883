"""Tests for the command-line entry point."""

import json
from unittest.mock import patch

import pytest

from vexport.__main__ import load_job, main
from vexport.exceptions import FinalEncodeError
from vexport.schemas.export import ExportResult

JOB = {
    "clips": [{"filePath": "/media/a.mp4", "sourceStart": 0, "sourceEnd": 5,
               "timelineStart": 0, "timelineEnd": 5}],
    "captions": [{"text": "hi", "startTime": 0, "endTime": 1, "highlightColor": "#ff0"}],
    "effects": [{"type": "dither", "timelineStart": 0, "timelineEnd": 1}],
    "outputPath": "/out/video.mp4",
    "width": 1080,
    "height": 1920,
}


@pytest.fixture
def job_file(temp_output_dir):
    path = temp_output_dir / "job.json"
    path.write_text(json.dumps(JOB), encoding="utf-8")
    return path


class TestLoadJob:
    """Tests for reading job files."""

    def test_camel_case_job(self, job_file):
        options = load_job(str(job_file))

        assert options.output_path == "/out/video.mp4"
        assert options.clips[0].source_end == 5
        assert options.captions[0].highlight_color == "#ff0"
        assert options.effects[0].type == "dither"
        assert options.debug is False

    def test_overrides(self, job_file):
        options = load_job(str(job_file), output="/elsewhere/x.mp4", debug=True)

        assert options.output_path == "/elsewhere/x.mp4"
        assert options.debug is True


class TestMain:
    """Tests for exit codes."""

    def test_success(self, job_file, capsys):
        with patch("vexport.__main__.export_video", return_value=ExportResult()) as export:
            assert main([str(job_file)]) == 0

        assert export.call_args.args[0].output_path == "/out/video.mp4"
        assert "Exported /out/video.mp4" in capsys.readouterr().out

    def test_invalid_job(self, temp_output_dir, capsys):
        bad = temp_output_dir / "bad.json"
        bad.write_text(json.dumps({"clips": []}), encoding="utf-8")

        assert main([str(bad)]) == 2
        assert main([str(temp_output_dir / "missing.json")]) == 2
        assert "Invalid job file" in capsys.readouterr().err

    def test_export_failure(self, job_file, capsys):
        with patch("vexport.__main__.export_video", side_effect=FinalEncodeError("Invalid argument")):
            assert main([str(job_file), "--debug"]) == 1

        assert "Final encoding failed: Invalid argument" in capsys.readouterr().err

    def test_unexpected_failure_exits_cleanly(self, job_file, capsys):
        with patch("vexport.__main__.export_video", side_effect=OSError(28, "No space left on device")):
            assert main([str(job_file)]) == 1

        assert "Export failed: [Errno 28] No space left on device" in capsys.readouterr().err
