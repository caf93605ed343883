"""Tests for ffprobe-based media probing."""

import json
import subprocess
from unittest.mock import patch

import pytest

from vexport.utils.media_info import get_video_info, has_audio_track


def _probe_result(data: dict, returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=json.dumps(data), stderr="")


class TestMediaInfo:
    """Test media info extraction using ffprobe."""

    def test_has_audio_track(self):
        with patch("vexport.utils.media_info.subprocess.run",
                   return_value=_probe_result({"streams": [{"codec_type": "audio"}]})) as run:
            assert has_audio_track("/media/a.mp4", ffprobe_path="/opt/ffprobe") is True

        cmd = run.call_args.args[0]
        assert cmd[0] == "/opt/ffprobe"
        assert cmd[-1] == "/media/a.mp4"
        assert ["-select_streams", "a"] == cmd[cmd.index("-select_streams"):cmd.index("-select_streams") + 2]

    def test_no_audio_streams(self):
        with patch("vexport.utils.media_info.subprocess.run", return_value=_probe_result({"streams": []})):
            assert has_audio_track("/media/silent.mp4") is False

    def test_unreadable_file_counts_as_silent(self):
        with patch("vexport.utils.media_info.subprocess.run", return_value=_probe_result({}, returncode=1)):
            assert has_audio_track("/media/broken.mp4") is False

        with patch("vexport.utils.media_info.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            assert has_audio_track("/media/a.mp4") is False

    def test_get_video_info(self):
        data = {
            "format": {"duration": "5.040000"},
            "streams": [
                {"codec_type": "video", "width": 1280, "height": 720, "r_frame_rate": "30000/1001"},
                {"codec_type": "audio"},
            ],
        }
        with patch("vexport.utils.media_info.subprocess.run", return_value=_probe_result(data)):
            info = get_video_info("/media/a.mp4")

        assert info["duration"] == pytest.approx(5.04)
        assert (info["width"], info["height"]) == (1280, 720)
        assert info["fps"] == pytest.approx(29.97, abs=0.01)
        assert info["has_audio"] is True

    def test_get_video_info_failure(self):
        with patch("vexport.utils.media_info.subprocess.run", return_value=_probe_result({}, returncode=1)):
            with pytest.raises(RuntimeError, match="ffprobe failed"):
                get_video_info("/media/missing.mp4")
