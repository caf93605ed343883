import os
import sys
from functools import lru_cache
from pathlib import Path

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_font_cache_dir() -> str:
    """Per-user cache directory for downloaded fonts."""
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    elif sys.platform == "darwin":
        base = str(Path.home() / "Library" / "Caches")
    else:
        base = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
    return str(Path(base) / "vexport" / "fonts")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Fonts
    font_cache_dir: str = _default_font_cache_dir()
    font_download_timeout_s: float = 20.0
    # Anything smaller is an HTML error page, not a font
    font_min_bytes: int = 10000
    # Override the platform default fallback fonts
    system_font_regular: str = ""
    system_font_bold: str = ""

    # Intermediate segments (normalized per clip before concat)
    segment_crf: int = 18
    segment_preset: str = "fast"

    # Final encode
    final_preset: str = "medium"
    video_codec: str = "libx264"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_sample_rate: int = 44100

    # Working directories. Empty = system temp dir.
    temp_dir: str = ""

    # Filter graphs longer than this are passed via a script file
    filter_script_threshold: int = 8000

    @computed_field
    @property
    def font_cache_path(self) -> Path:
        """Font cache directory as a Path."""
        return Path(self.font_cache_dir)


@lru_cache
def get_settings() -> Settings:
    return Settings()
