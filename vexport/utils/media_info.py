"""Media file probing utilities using FFprobe."""

import json
import subprocess

from vexport.config import get_settings


def _run_ffprobe(file_path: str, *args, ffprobe_path: str | None = None) -> dict:
    """Run ffprobe and return parsed JSON."""
    cmd = [
        ffprobe_path or get_settings().ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise RuntimeError(f"ffprobe could not be started: {e}") from e
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}") from e


def has_audio_track(file_path: str, ffprobe_path: str | None = None) -> bool:
    """
    Check if a media file has an audio stream.

    Unreadable files count as silent so the audio graph never references a
    stream that does not exist.
    """
    try:
        data = _run_ffprobe(
            file_path, "-show_streams", "-select_streams", "a", ffprobe_path=ffprobe_path
        )
        return len(data.get("streams", [])) > 0
    except RuntimeError:
        return False


def get_video_info(file_path: str, ffprobe_path: str | None = None) -> dict:
    """
    Get duration, dimensions and frame rate of the first video stream.

    Returns:
        Dictionary with duration, width, height, fps, has_audio

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams", ffprobe_path=ffprobe_path)

    result = {
        "duration": None,
        "width": None,
        "height": None,
        "fps": None,
        "has_audio": False,
    }

    format_info = data.get("format", {})
    if "duration" in format_info:
        result["duration"] = float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")
        if codec_type == "video" and result["width"] is None:
            result["width"] = stream.get("width")
            result["height"] = stream.get("height")
            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/")
                if int(den) > 0:
                    result["fps"] = int(num) / int(den)
        elif codec_type == "audio":
            result["has_audio"] = True

    return result
