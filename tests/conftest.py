"""
Pytest fixtures for vexport tests.

Tests that drive a real ffmpeg binary are marked requires_ffmpeg and are
skipped when ffmpeg/ffprobe are not on PATH. Everything else mocks the
process runner and the HTTP layer.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path

import pytest

from vexport.config import Settings
from vexport.schemas.export import Caption, CaptionWord, ExportClip, ExportJobOptions


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip @pytest.mark.requires_ffmpeg tests when ffmpeg is missing."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not on PATH")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="vexport_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_output_dir: Path) -> Settings:
    """Settings isolated from the environment and the user's font cache."""
    return Settings(
        _env_file=None,
        font_cache_dir=str(temp_output_dir / "fonts"),
        temp_dir=str(temp_output_dir / "tmp"),
        system_font_regular="/fonts/Regular.ttf",
        system_font_bold="/fonts/Bold.ttf",
    )


@pytest.fixture
def make_clip():
    """Factory for clips: make_clip(0, 5) is 5s of source placed at 0s."""
    def _make(timeline_start: float, timeline_end: float, file_path: str = "/media/a.mp4",
              source_start: float = 0.0) -> ExportClip:
        return ExportClip(
            file_path=file_path,
            source_start=source_start,
            source_end=source_start + (timeline_end - timeline_start),
            timeline_start=timeline_start,
            timeline_end=timeline_end,
        )
    return _make


@pytest.fixture
def karaoke_caption() -> Caption:
    """Three words spanning 1.0-2.5s with a highlight colour."""
    return Caption(
        text="one two three",
        start_time=1.0,
        end_time=2.5,
        highlight_color="#ffcc00",
        line_width_px=420,
        words=[
            CaptionWord(word="one", start_time=1.0, end_time=1.5),
            CaptionWord(word="two", start_time=1.5, end_time=2.0),
            CaptionWord(word="three", start_time=2.0, end_time=2.5),
        ],
    )


@pytest.fixture
def job(make_clip, temp_output_dir: Path) -> ExportJobOptions:
    """Single 5s clip at 1280x720, no captions, effects or audio."""
    return ExportJobOptions(
        clips=[make_clip(0, 5)],
        output_path=str(temp_output_dir / "out" / "export.mp4"),
        width=1280,
        height=720,
        fps=30,
        crf=20,
        mute_video_audio=True,
    )


@pytest.fixture
def source_video(temp_output_dir: Path):
    """Factory generating test-pattern videos with ffmpeg (skip without it)."""
    def _make(name: str, duration: float = 5.0, size: str = "640x360", with_audio: bool = True) -> Path:
        output_path = temp_output_dir / name
        cmd = [
            "ffmpeg", "-y",
            "-f", "lavfi", "-i", f"testsrc=size={size}:rate=25:duration={duration}",
        ]
        if with_audio:
            cmd += ["-f", "lavfi", "-i", f"sine=frequency=440:duration={duration}"]
        cmd += ["-c:v", "libx264", "-pix_fmt", "yuv420p"]
        cmd += ["-c:a", "aac"] if with_audio else ["-an"]
        cmd += ["-shortest", str(output_path)]
        subprocess.run(cmd, capture_output=True, check=True)
        return output_path
    return _make
