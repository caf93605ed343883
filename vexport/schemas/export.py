"""Export job schemas.

One ExportJobOptions value is built per export from the editor's current
project snapshot. Field names are snake_case; the camelCase spelling used by
the editor's job JSON is accepted as an alias.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ExportModel(BaseModel):
    """Base for all export schemas (camelCase aliases, snake_case attributes)."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# =============================================================================
# Timeline media
# =============================================================================


class ExportClip(ExportModel):
    """A trimmed, positioned reference into a source file on the visual track."""

    file_path: str
    source_start: float = Field(..., ge=0)
    source_end: float
    timeline_start: float = Field(..., ge=0)
    timeline_end: float

    @model_validator(mode="after")
    def validate_ranges(self) -> "ExportClip":
        if self.source_end <= self.source_start:
            raise ValueError(
                f"sourceEnd ({self.source_end}) must be greater than sourceStart ({self.source_start})"
            )
        if self.timeline_end <= self.timeline_start:
            raise ValueError(
                f"timelineEnd ({self.timeline_end}) must be greater than timelineStart ({self.timeline_start})"
            )
        return self

    @property
    def source_duration(self) -> float:
        return self.source_end - self.source_start


class ExportAudioClip(ExportClip):
    """Same shape as a visual clip, but only feeds the audio mix."""


# =============================================================================
# Captions
# =============================================================================


class CaptionWord(ExportModel):
    """Word-level timing plus the preview renderer's layout hints."""

    word: str
    start_time: float
    end_time: float
    # Preview-renderer layout hints, accepted for job-JSON compatibility only
    x_offset: float = 0
    y_adjust_px: float = 0


class Caption(ExportModel):
    """A timed caption; ``words`` enables karaoke highlighting.

    Times are coerced to float but not range-checked here: invalid captions
    are dropped by the caption compiler instead of failing the whole job.
    """

    text: str
    start_time: float
    end_time: float
    font_size: float = 32
    color: str = "white"
    background: str = "transparent"
    bold: bool = False
    position_y: float = 85  # percent from the top
    font_family: str | None = None
    stroke_width: float | None = None
    stroke_color: str | None = None
    highlight_color: str | None = None
    line_width_px: float | None = None
    words: list[CaptionWord] | None = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def coerce_time(cls, v: object) -> float:
        # Unparseable times become NaN so the caption is dropped, not the job
        try:
            return float(v)
        except (TypeError, ValueError):
            return float("nan")


# =============================================================================
# Effects (closed tagged union)
# =============================================================================


class TimedEffect(ExportModel):
    timeline_start: float = Field(..., ge=0)
    timeline_end: float

    @model_validator(mode="after")
    def validate_window(self) -> "TimedEffect":
        if self.timeline_end <= self.timeline_start:
            raise ValueError(
                f"timelineEnd ({self.timeline_end}) must be greater than timelineStart ({self.timeline_start})"
            )
        return self


class PixelateEffect(TimedEffect):
    type: Literal["pixelate"] = "pixelate"
    start_block_size: float = 2
    end_block_size: float = 32


class DuotoneEffect(TimedEffect):
    type: Literal["duotone"] = "duotone"
    shadow_color: str = Field(default="#000000", pattern=r"^#[0-9A-Fa-f]{6}$")
    highlight_color: str = Field(default="#ffffff", pattern=r"^#[0-9A-Fa-f]{6}$")


class AsciiEffect(TimedEffect):
    type: Literal["ascii"] = "ascii"
    cell_size: float = 8
    contrast: float = 1.2


class DitherEffect(TimedEffect):
    type: Literal["dither"] = "dither"
    levels: float = 4
    amount: float = 0.5


class ChromaticAberrationEffect(TimedEffect):
    type: Literal["chromatic_aberration"] = "chromatic_aberration"
    offset_px: float = 4


Effect = Annotated[
    Union[
        PixelateEffect,
        DuotoneEffect,
        AsciiEffect,
        DitherEffect,
        ChromaticAberrationEffect,
    ],
    Field(discriminator="type"),
]


# =============================================================================
# Job
# =============================================================================


class ExportJobOptions(ExportModel):
    """Everything one export job needs."""

    clips: list[ExportClip] = Field(default_factory=list)
    audio_clips: list[ExportAudioClip] = Field(default_factory=list)
    mute_video_audio: bool = False
    captions: list[Caption] = Field(default_factory=list)
    effects: list[Effect] = Field(default_factory=list)
    output_path: str
    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)
    fps: int = Field(default=30, gt=0)
    crf: int = Field(default=18, ge=0, le=51)
    debug: bool = False


class ExportResult(ExportModel):
    """Present debug_bundle_path only when debug mode retained artifacts."""

    debug_bundle_path: str | None = None
