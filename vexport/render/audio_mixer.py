"""
Audio mix compilation for the final encode.

Every timed audio source (the audio of each visual clip unless muted, plus
every audio-track clip) becomes its own trimmed ffmpeg input, delayed to its
timeline position. One source passes through; several are mixed with
normalization off so the levels the creator set are kept.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from vexport.schemas.export import ExportAudioClip, ExportClip
from vexport.utils.interpolation import round_half_up
from vexport.utils.media_info import has_audio_track

logger = logging.getLogger(__name__)

AUDIO_OUTPUT_LABEL = "aout"


@dataclass
class AudioSource:
    """One trimmed audio input placed on the timeline."""

    file_path: str
    source_start: float
    source_end: float
    timeline_start: float
    kind: str  # "clip" (visual clip audio) or "track" (audio-track clip)

    @property
    def duration(self) -> float:
        return self.source_end - self.source_start

    @property
    def delay_ms(self) -> int:
        return max(0, round_half_up(self.timeline_start * 1000))


@dataclass
class AudioMixPlan:
    """Inputs and filter graph fragment producing ``[aout]``."""

    sources: list[AudioSource]
    input_args: list[str] = field(default_factory=list)
    filter_parts: list[str] = field(default_factory=list)

    @property
    def filter_graph(self) -> str:
        return ";".join(self.filter_parts)

    @property
    def clip_audio_count(self) -> int:
        return sum(1 for s in self.sources if s.kind == "clip")

    @property
    def track_audio_count(self) -> int:
        return sum(1 for s in self.sources if s.kind == "track")


class AudioMixCompiler:
    """Builds the delay + mix graph for all timed audio sources.

    Args:
        has_audio: Probe telling whether a file has an audio stream; clip
            audio from files without one is skipped so the graph never
            references a missing stream. Defaults to ffprobe.
    """

    def __init__(self, has_audio: Callable[[str], bool] | None = None):
        self.has_audio = has_audio or has_audio_track

    def collect_sources(
        self,
        clips: list[ExportClip],
        audio_clips: list[ExportAudioClip],
        mute_video_audio: bool,
    ) -> list[AudioSource]:
        sources: list[AudioSource] = []
        if not mute_video_audio:
            probed: dict[str, bool] = {}
            for clip in clips:
                if clip.file_path not in probed:
                    probed[clip.file_path] = self.has_audio(clip.file_path)
                if not probed[clip.file_path]:
                    logger.info(f"[AUDIO MIX] No audio stream in {clip.file_path}, skipping")
                    continue
                sources.append(
                    AudioSource(
                        file_path=clip.file_path,
                        source_start=clip.source_start,
                        source_end=clip.source_end,
                        timeline_start=clip.timeline_start,
                        kind="clip",
                    )
                )

        for audio_clip in audio_clips:
            sources.append(
                AudioSource(
                    file_path=audio_clip.file_path,
                    source_start=audio_clip.source_start,
                    source_end=audio_clip.source_end,
                    timeline_start=audio_clip.timeline_start,
                    kind="track",
                )
            )
        return sources

    def compile(self, sources: list[AudioSource], first_input_index: int = 1) -> AudioMixPlan | None:
        """Build inputs and filters; None when there is no audio at all.

        Args:
            sources: Audio sources in input order
            first_input_index: ffmpeg input index of the first source (the
                concatenated video is input 0)
        """
        if not sources:
            return None

        plan = AudioMixPlan(sources=sources)
        labels = []
        for k, source in enumerate(sources):
            plan.input_args.extend([
                "-ss", str(source.source_start),
                "-t", str(source.duration),
                "-i", source.file_path,
            ])
            label = f"a{k}"
            plan.filter_parts.append(
                f"[{first_input_index + k}:a]adelay=delays={source.delay_ms}:all=1[{label}]"
            )
            labels.append(label)

        if len(labels) == 1:
            plan.filter_parts.append(f"[{labels[0]}]anull[{AUDIO_OUTPUT_LABEL}]")
        else:
            mix_inputs = "".join(f"[{label}]" for label in labels)
            plan.filter_parts.append(
                f"{mix_inputs}amix=inputs={len(labels)}:duration=longest"
                f":normalize=0:dropout_transition=0[{AUDIO_OUTPUT_LABEL}]"
            )

        logger.info(
            f"[AUDIO MIX] {plan.clip_audio_count} clip audio + {plan.track_audio_count} track inputs"
        )
        return plan
