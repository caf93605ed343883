"""Segment encoding and concatenation for the visual track.

Each clip is trimmed and normalized into an intermediate H.264 segment at the
export size and a constant frame rate, then all segments are joined with the
concat demuxer in stream-copy mode. Stream copy only works when every segment
shares codec, size, pixel format and timebase, which is why gaps on the
timeline are filled with black segments encoded with the same settings.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from vexport.config import Settings, get_settings
from vexport.exceptions import (
    ConcatError,
    ProcessError,
    SegmentEncodeError,
    SegmentMissingError,
)
from vexport.render.runner import FFmpegRunner
from vexport.schemas.export import ExportClip

logger = logging.getLogger(__name__)

# Gaps shorter than this are treated as rounding noise between adjacent clips
GAP_EPSILON_S = 0.001

BLACK_SOURCE = "color=black"


@dataclass
class SegmentPlan:
    """One entry on the visual track: a clip, or black filler for a gap."""

    index: int  # position of the clip in the job (for a gap: the clip that follows it)
    timeline_start: float
    duration: float
    output_path: str
    clip: ExportClip | None = None

    @property
    def is_gap(self) -> bool:
        return self.clip is None

    @property
    def source_name(self) -> str:
        return self.clip.file_path if self.clip else BLACK_SOURCE

    @property
    def timeline_end(self) -> float:
        return self.timeline_start + self.duration


def plan_visual_track(clips: list[ExportClip], work_dir: str) -> list[SegmentPlan]:
    """Lay clips out in timeline order and fill the gaps between them.

    Clips are stably sorted by timeline_start. A clip contributes its source
    duration; if it starts before the previous segment ended, it is appended
    right after it. A gap before a clip (including before the first clip)
    becomes a black segment so concatenated timestamps equal timeline time.
    """
    ordered = sorted(enumerate(clips), key=lambda item: item[1].timeline_start)

    plans: list[SegmentPlan] = []
    cursor = 0.0
    for index, clip in ordered:
        gap = clip.timeline_start - cursor
        if gap > GAP_EPSILON_S:
            plans.append(
                SegmentPlan(
                    index=index,
                    timeline_start=cursor,
                    duration=gap,
                    output_path=os.path.join(work_dir, f"seg_{len(plans):04d}.mp4"),
                )
            )
            cursor = clip.timeline_start
        elif gap < -GAP_EPSILON_S:
            logger.warning(
                f"[SEGMENT] Clip {index} starts at {clip.timeline_start:.3f}s, overlapping the "
                f"previous clip; appending it at {cursor:.3f}s"
            )

        duration = max(0.01, clip.source_duration)
        plans.append(
            SegmentPlan(
                index=index,
                timeline_start=cursor,
                duration=duration,
                output_path=os.path.join(work_dir, f"seg_{len(plans):04d}.mp4"),
                clip=clip,
            )
        )
        cursor += duration

    return plans


class SegmentEncoder:
    """Normalizes clips into uniform intermediate segments."""

    def __init__(
        self,
        runner: FFmpegRunner,
        width: int,
        height: int,
        fps: int,
        settings: Settings | None = None,
    ):
        self.runner = runner
        self.width = width
        self.height = height
        self.fps = fps
        self.settings = settings or get_settings()

    def _output_args(self, output_path: str) -> list[str]:
        return [
            "-c:v", self.settings.video_codec,
            "-crf", str(self.settings.segment_crf),
            "-preset", self.settings.segment_preset,
            "-pix_fmt", self.settings.pixel_format,
            "-fps_mode", "cfr",
            "-r", str(self.fps),
            "-an",
            output_path,
        ]

    def scale_filter(self) -> str:
        """Aspect-fill then center-crop to the export size (no letterbox)."""
        w, h = self.width, self.height
        return f"scale={w}:{h}:force_original_aspect_ratio=increase,crop={w}:{h},setsar=1"

    def build_clip_args(self, clip: ExportClip, duration: float, output_path: str) -> list[str]:
        return [
            "-ss", str(clip.source_start),
            "-i", clip.file_path,
            "-t", str(duration),
            "-vf", self.scale_filter(),
            *self._output_args(output_path),
        ]

    def build_gap_args(self, duration: float, output_path: str) -> list[str]:
        return [
            "-f", "lavfi",
            "-i", f"color=c=black:s={self.width}x{self.height}:r={self.fps}:d={duration}",
            "-t", str(duration),
            "-vf", "setsar=1",
            *self._output_args(output_path),
        ]

    def encode(self, plan: SegmentPlan) -> str:
        """Encode one planned segment and verify the file exists.

        Raises:
            SegmentEncodeError: If ffmpeg failed
            SegmentMissingError: If ffmpeg exited 0 but wrote nothing
        """
        if plan.clip is not None:
            args = self.build_clip_args(plan.clip, plan.duration, plan.output_path)
            label = f"segment-{plan.index}"
        else:
            args = self.build_gap_args(plan.duration, plan.output_path)
            label = f"gap-before-{plan.index}"

        logger.info(
            f"[SEGMENT] Encoding {label}: {Path(plan.source_name).name} "
            f"({plan.duration:.3f}s at {plan.timeline_start:.3f}s)"
        )
        try:
            self.runner.run(label, args)
        except ProcessError as e:
            raise SegmentEncodeError(plan.index, plan.source_name, e.message) from e

        if not os.path.exists(plan.output_path):
            raise SegmentMissingError(plan.index, plan.source_name)
        return plan.output_path


def concat_list_entry(path: str) -> str:
    """``file '<path>'`` with forward slashes and quotes escaped for the demuxer."""
    normalized = path.replace("\\", "/")
    escaped = normalized.replace("'", "'\\''")
    return f"file '{escaped}'"


class Concatenator:
    """Joins segments with the concat demuxer (stream copy, no re-encode)."""

    def __init__(self, runner: FFmpegRunner):
        self.runner = runner

    def write_list(self, segment_paths: list[str], list_path: str) -> str:
        with open(list_path, "w", encoding="utf-8") as f:
            for segment_path in segment_paths:
                f.write(concat_list_entry(segment_path) + "\n")
        return list_path

    def build_args(self, list_path: str, output_path: str) -> list[str]:
        return [
            "-f", "concat",
            "-safe", "0",
            "-i", list_path,
            "-c", "copy",
            output_path,
        ]

    def concat(self, segment_paths: list[str], work_dir: str) -> str:
        """Concatenate ``segment_paths`` in order.

        ``work_dir`` must already be a canonical path; the demuxer cannot
        resolve short/alias path forms.

        Raises:
            ConcatError: If ffmpeg failed or produced no file
        """
        list_path = self.write_list(segment_paths, os.path.join(work_dir, "segments.txt"))
        output_path = os.path.join(work_dir, "concat.mp4")

        logger.info(f"[CONCAT] Joining {len(segment_paths)} segments")
        try:
            self.runner.run("concat", self.build_args(list_path, output_path))
        except ProcessError as e:
            raise ConcatError(e.message) from e

        if not os.path.exists(output_path):
            raise ConcatError("ffmpeg produced no output")
        return output_path
