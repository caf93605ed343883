"""
Export pipeline: renders one editing project to a video file.

Stages, each consuming the previous stage's file on disk:
1. Encode one normalized segment per clip (and per gap) -> 0-60%
2. Concatenate segments by stream copy -> 70%
3. Resolve caption fonts, write the subtitle document, compile effects
4. Compile the audio delay/mix graph
5. Final filtered encode -> 100%
6. Remove the work directory (kept, with a command log, in debug mode)
"""

import asyncio
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

from vexport.config import Settings, get_settings
from vexport.exceptions import FinalEncodeError, NoClipsError, ProcessError, VexportError
from vexport.render.audio_mixer import AUDIO_OUTPUT_LABEL, AudioMixCompiler, AudioMixPlan
from vexport.render.captions import CaptionCompiler, build_ass_filter
from vexport.render.effects import compile_effects
from vexport.render.fonts import FontResolver, get_font_resolver
from vexport.render.runner import FFmpegRunner
from vexport.render.segments import Concatenator, SegmentEncoder, SegmentPlan, plan_visual_track
from vexport.render.text_layout import validate_captions
from vexport.schemas.export import Caption, ExportJobOptions, ExportResult
from vexport.utils.interpolation import round_half_up
from vexport.utils.media_info import has_audio_track

logger = logging.getLogger(__name__)

VIDEO_OUTPUT_LABEL = "vout"
SEGMENT_PROGRESS_SHARE = 60
CONCAT_PROGRESS = 70
CAPTIONS_PROGRESS = 75
DEBUG_LOG_NAME = "ffmpeg-debug.log"


# ============================================================================
# Progress
# ============================================================================


class ExportStatus(Enum):
    """Export job status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ExportProgress:
    """Progress information for an export job."""

    job_id: str
    status: ExportStatus
    percent: int = 0
    current_step: Optional[str] = None
    elapsed_ms: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "percent": self.percent,
            "current_step": self.current_step,
            "elapsed_ms": self.elapsed_ms,
            "error_message": self.error_message,
        }


class ProgressReporter:
    """Keeps an ExportProgress current and forwards percentages to a callback.

    Percentages are integers 0-100 and never decrease; the callback only
    fires when the value actually changes.
    """

    def __init__(self, job_id: str, callback: Callable[[int], None] | None = None):
        self.progress = ExportProgress(job_id=job_id, status=ExportStatus.PENDING)
        self._callback = callback
        self._started = time.monotonic()

    def _touch(self) -> None:
        self.progress.elapsed_ms = int((time.monotonic() - self._started) * 1000)

    def update(self, percent: int, step: str) -> None:
        percent = max(0, min(100, int(percent)))
        self.progress.status = ExportStatus.PROCESSING
        self.progress.current_step = step
        self._touch()
        if percent <= self.progress.percent:
            return
        self.progress.percent = percent
        logger.info(f"[EXPORT] {percent}% {step}")
        if self._callback:
            self._callback(percent)

    def complete(self) -> None:
        self.update(100, "Complete")
        self.progress.status = ExportStatus.COMPLETED

    def fail(self, message: str) -> None:
        self._touch()
        self.progress.status = ExportStatus.FAILED
        self.progress.error_message = message


# ============================================================================
# Timeline helpers
# ============================================================================


def output_duration(options: ExportJobOptions, captions: list[Caption] | None = None) -> float:
    """max(timeline_end) over clips, valid captions and effects."""
    if captions is None:
        captions = validate_captions(options.captions)
    ends = [clip.timeline_end for clip in options.clips]
    ends.extend(caption.end_time for caption in captions)
    ends.extend(effect.timeline_end for effect in options.effects)
    return max(ends, default=0.0)


def segment_progress(completed: int, total: int) -> int:
    return round_half_up(completed / total * SEGMENT_PROGRESS_SHARE)


# ============================================================================
# Pipeline
# ============================================================================


class ExportPipeline:
    """Runs one export job at a time; create one per job for concurrent exports.

    Args:
        settings: Engine settings (defaults to the environment)
        font_resolver: Shared font cache (defaults to the process-wide one)
        has_audio: Audio-stream probe used for clip audio (defaults to ffprobe)
        job_id: Identifier reported in progress (random if omitted)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        font_resolver: FontResolver | None = None,
        has_audio: Callable[[str], bool] | None = None,
        job_id: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.font_resolver = font_resolver
        self.has_audio = has_audio or (lambda path: has_audio_track(path, self.settings.ffprobe_path))
        self.job_id = job_id or str(uuid4())
        self.reporter = ProgressReporter(self.job_id)
        self.runner: FFmpegRunner | None = None

    @property
    def progress(self) -> ExportProgress:
        """Polled view of the current job's progress."""
        return self.reporter.progress

    def _get_font_resolver(self) -> FontResolver:
        if self.font_resolver is None:
            self.font_resolver = get_font_resolver()
        return self.font_resolver

    # ------------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------------

    async def export(
        self,
        options: ExportJobOptions,
        on_progress: Callable[[int], None] | None = None,
    ) -> ExportResult:
        """
        Execute the full export pipeline.

        Args:
            options: The job
            on_progress: Called with each new integer percentage

        Returns:
            ExportResult; debug_bundle_path is set in debug mode

        Raises:
            NoClipsError: If the job has no visual clips
            SegmentEncodeError, SegmentMissingError: If a segment failed
            ConcatError: If joining segments failed
            FinalEncodeError: If the final encode failed
        """
        self.reporter = ProgressReporter(self.job_id, on_progress)

        if not options.clips:
            self.reporter.fail(NoClipsError.message)
            raise NoClipsError()

        work_dir, debug_dir = self._prepare_work_dir(options)
        debug_log = os.path.join(work_dir, DEBUG_LOG_NAME) if debug_dir else None
        self.runner = FFmpegRunner(self.settings.ffmpeg_path, debug_log)
        logger.info(f"[EXPORT] Job {self.job_id}: {len(options.clips)} clips -> {options.output_path}")

        plans: list[SegmentPlan] = []
        audio_plan: AudioMixPlan | None = None
        try:
            plans = plan_visual_track(options.clips, work_dir)
            segment_paths = await self._encode_segments(plans, options)
            concat_path = await self._concat(segment_paths, work_dir)

            captions = validate_captions(options.captions)
            video_filters = await self._build_video_filters(options, captions, plans, work_dir)

            audio_plan = self._build_audio_plan(options, plans)
            total = output_duration(options, captions)
            args = self.build_final_args(options, concat_path, video_filters, audio_plan, total, work_dir)
            await self._encode_final(args)

            self.reporter.complete()
            logger.info(f"[EXPORT] Job {self.job_id} complete: {options.output_path}")
        except VexportError as e:
            self.reporter.fail(e.message)
            logger.error(f"[EXPORT] Job {self.job_id} failed: {e.message}")
            raise
        except Exception as e:
            self.reporter.fail(str(e))
            logger.exception(f"[EXPORT] Job {self.job_id} failed unexpectedly: {e}")
            raise
        finally:
            if debug_dir:
                self._write_summary(options, plans, audio_plan)
            else:
                self._cleanup(work_dir)

        return ExportResult(debug_bundle_path=debug_dir)

    # ------------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------------

    def _prepare_work_dir(self, options: ExportJobOptions) -> tuple[str, str | None]:
        """Per-job work directory, resolved to its canonical path.

        Debug jobs work inside ``<output dir>/<stem>_debug_<ms>/`` so every
        artifact is kept next to the output.
        """
        output_dir = os.path.dirname(os.path.abspath(options.output_path))
        os.makedirs(output_dir, exist_ok=True)

        if options.debug:
            stem = Path(options.output_path).stem
            debug_dir = os.path.join(output_dir, f"{stem}_debug_{int(time.time() * 1000)}")
            os.makedirs(debug_dir, exist_ok=True)
            debug_dir = os.path.realpath(debug_dir)
            return debug_dir, debug_dir

        base = os.path.realpath(self.settings.temp_dir or tempfile.gettempdir())
        os.makedirs(base, exist_ok=True)
        return tempfile.mkdtemp(prefix="vexport_", dir=base), None

    async def _encode_segments(self, plans: list[SegmentPlan], options: ExportJobOptions) -> list[str]:
        encoder = SegmentEncoder(self.runner, options.width, options.height, options.fps, self.settings)
        paths = []
        for i, plan in enumerate(plans):
            # Use asyncio.to_thread to avoid blocking the event loop
            paths.append(await asyncio.to_thread(encoder.encode, plan))
            self.reporter.update(segment_progress(i + 1, len(plans)), f"Encoded segment {i + 1}/{len(plans)}")
        return paths

    async def _concat(self, segment_paths: list[str], work_dir: str) -> str:
        concatenator = Concatenator(self.runner)
        concat_path = await asyncio.to_thread(concatenator.concat, segment_paths, work_dir)
        self.reporter.update(CONCAT_PROGRESS, "Concatenated segments")
        return concat_path

    def _usable_fonts_dir(self) -> str | None:
        """Font cache dir for libass, or None when it cannot be created."""
        try:
            return str(self._get_font_resolver().fonts_dir)
        except OSError as e:
            logger.warning(f"[EXPORT] Font cache unavailable, rendering without fontsdir: {e}")
            return None

    async def _resolve_fonts(self, captions: list[Caption]) -> dict[tuple[str | None, bool], str]:
        """Resolve each distinct (family, bold) pair once; never fails."""
        resolver = self._get_font_resolver()
        font_paths: dict[tuple[str | None, bool], str] = {}
        for caption in captions:
            key = (caption.font_family, caption.bold)
            if key not in font_paths:
                font_paths[key] = await asyncio.to_thread(resolver.resolve, caption.font_family, caption.bold)
        return font_paths

    async def _build_video_filters(
        self,
        options: ExportJobOptions,
        captions: list[Caption],
        plans: list[SegmentPlan],
        work_dir: str,
    ) -> list[str]:
        """Frame hold, effects, then captions on top."""
        filters: list[str] = []

        total = output_duration(options, captions)
        visual_end = plans[-1].timeline_end if plans else 0.0
        if total > visual_end:
            filters.append(f"tpad=stop_mode=clone:stop_duration={total - visual_end:.4f}")

        filters.extend(compile_effects(options.effects))

        if captions:
            font_paths = await self._resolve_fonts(captions)
            compiler = CaptionCompiler(options.width, options.height, font_paths)
            ass_path = os.path.join(work_dir, "captions.ass")
            written = await asyncio.to_thread(compiler.write, captions, ass_path)
            if written:
                filters.append(build_ass_filter(written, self._usable_fonts_dir()))
        self.reporter.update(CAPTIONS_PROGRESS, "Compiled captions and effects")
        return filters

    def _build_audio_plan(self, options: ExportJobOptions, plans: list[SegmentPlan]) -> AudioMixPlan | None:
        # Clip audio follows the clip's actual position in the concatenated video
        placed_clips = [
            plan.clip.model_copy(update={"timeline_start": plan.timeline_start})
            for plan in plans
            if plan.clip is not None
        ]
        compiler = AudioMixCompiler(self.has_audio)
        sources = compiler.collect_sources(placed_clips, options.audio_clips, options.mute_video_audio)
        return compiler.compile(sources)

    def build_final_args(
        self,
        options: ExportJobOptions,
        concat_path: str,
        video_filters: list[str],
        audio_plan: AudioMixPlan | None,
        total_duration: float,
        work_dir: str,
    ) -> list[str]:
        """Build ffmpeg arguments for the final encode without executing it."""
        chain = ",".join(video_filters) if video_filters else "null"
        args = ["-i", concat_path]

        if audio_plan is not None:
            args.extend(audio_plan.input_args)
            graph = f"[0:v]{chain}[{VIDEO_OUTPUT_LABEL}];{audio_plan.filter_graph}"
            args.extend(self._filter_graph_args(graph, work_dir))
            args.extend(["-map", f"[{VIDEO_OUTPUT_LABEL}]", "-map", f"[{AUDIO_OUTPUT_LABEL}]"])
        elif len(chain) > self.settings.filter_script_threshold:
            graph = f"[0:v]{chain}[{VIDEO_OUTPUT_LABEL}]"
            args.extend(self._filter_graph_args(graph, work_dir))
            args.extend(["-map", f"[{VIDEO_OUTPUT_LABEL}]"])
        else:
            args.extend(["-vf", chain])

        args.extend([
            "-c:v", self.settings.video_codec,
            "-crf", str(options.crf),
            "-preset", self.settings.final_preset,
            "-pix_fmt", self.settings.pixel_format,
        ])
        if audio_plan is not None:
            args.extend([
                "-c:a", self.settings.audio_codec,
                "-ar", str(self.settings.audio_sample_rate),
            ])
        else:
            args.append("-an")

        args.extend([
            "-r", str(options.fps),
            "-t", f"{total_duration:.4f}",
            "-movflags", "+faststart",
            options.output_path,
        ])
        return args

    def _filter_graph_args(self, graph: str, work_dir: str) -> list[str]:
        """Inline graph, or a script file when it would make the command line too long."""
        if len(graph) <= self.settings.filter_script_threshold:
            return ["-filter_complex", graph]

        script_path = os.path.join(work_dir, "filter_graph.txt")
        with open(script_path, "w", encoding="utf-8") as f:
            f.write(graph)
        logger.info(f"[EXPORT] Filter graph is {len(graph)} chars, using {script_path}")
        return ["-filter_complex_script", script_path]

    async def _encode_final(self, args: list[str]) -> None:
        try:
            # Use asyncio.to_thread to avoid blocking the event loop
            await asyncio.to_thread(self.runner.run, "final-export", args)
        except ProcessError as e:
            raise FinalEncodeError(e.stderr) from e

    # ------------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------------

    def _write_summary(
        self,
        options: ExportJobOptions,
        plans: list[SegmentPlan],
        audio_plan: AudioMixPlan | None,
    ) -> None:
        if self.runner is None:
            return
        progress = self.reporter.progress
        summary = "\n".join([
            f"output={options.output_path}",
            f"width={options.width}",
            f"height={options.height}",
            f"fps={options.fps}",
            f"crf={options.crf}",
            f"segments={len(plans)}",
            f"videoAudioInputs={audio_plan.clip_audio_count if audio_plan else 0}",
            f"audioTrackInputs={audio_plan.track_audio_count if audio_plan else 0}",
            f"status={progress.status.value}",
        ])
        try:
            self.runner.append_debug("summary", summary)
        except OSError as e:
            logger.warning(f"[EXPORT] Could not write debug summary: {e}")

    def _cleanup(self, work_dir: str) -> None:
        """Remove the job's temporary files."""
        shutil.rmtree(work_dir, ignore_errors=True)


def export_video(
    options: ExportJobOptions,
    on_progress: Callable[[int], None] | None = None,
    **pipeline_kwargs: Any,
) -> ExportResult:
    """Run an export to completion from synchronous code."""
    pipeline = ExportPipeline(**pipeline_kwargs)
    return asyncio.run(pipeline.export(options, on_progress))
