"""Caption text layout matching the editor preview.

The preview draws captions on a canvas authored against a reference width
(1920 landscape, 1080 portrait) and wraps word-timed captions greedily at 85%
of the frame width. Export repeats the same math with Pillow measuring the
same font file the subtitle renderer will load, so line breaks land where the
user saw them.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable

from PIL import ImageFont

from vexport.schemas.export import Caption
from vexport.utils.interpolation import round_half_up

logger = logging.getLogger(__name__)

LANDSCAPE_REFERENCE_WIDTH = 1920
PORTRAIT_REFERENCE_WIDTH = 1080
MAX_LINE_WIDTH_RATIO = 0.85
MIN_WORD_DURATION_S = 0.01
DEFAULT_FONT_SIZE = 32


@dataclass
class TimedWord:
    word: str
    start: float
    end: float


@dataclass
class CaptionLine:
    """One subtitle event: a caption, or one wrapped line of a word-timed caption."""

    caption: Caption
    text: str
    start: float
    end: float
    words: list[TimedWord] = field(default_factory=list)

    @property
    def is_karaoke(self) -> bool:
        return bool(self.words) and bool(self.caption.highlight_color)


def reference_width(width: int, height: int) -> int:
    return LANDSCAPE_REFERENCE_WIDTH if width > height else PORTRAIT_REFERENCE_WIDTH


def font_scale(width: int, height: int) -> float:
    """Scale from preview-authored pixel sizes to the export resolution."""
    return width / reference_width(width, height)


def scaled_font_size(font_size: float | None, scale: float) -> int:
    return round_half_up((font_size or DEFAULT_FONT_SIZE) * scale)


def validate_captions(captions: list[Caption]) -> list[Caption]:
    """Drop captions with non-finite or non-positive duration, sort by start.

    Times were already coerced to float by the schema. The sort is stable, so
    an already valid and sorted list comes back unchanged.
    """
    valid = []
    for caption in captions:
        start, end = caption.start_time, caption.end_time
        if not (math.isfinite(start) and math.isfinite(end)) or end <= start:
            logger.warning(f"[CAPTIONS] Dropping caption with invalid time range: {caption.text!r}")
            continue
        valid.append(caption)
    return sorted(valid, key=lambda c: c.start_time)


def normalize_word_timings(caption: Caption) -> list[TimedWord]:
    """Rebase word times onto the caption's timeline position and de-overlap them.

    Word timestamps come from transcription; the caption may have been moved
    since, so every word is shifted by ``caption.start_time - words[0].start``.
    Each word then starts no earlier than the previous one ended and lasts at
    least MIN_WORD_DURATION_S.
    """
    if not caption.words:
        return []

    offset = caption.start_time - caption.words[0].start_time
    prev_end = caption.words[0].start_time + offset
    timed = []
    for word in caption.words:
        start = max(prev_end, word.start_time + offset)
        end = max(start + MIN_WORD_DURATION_S, word.end_time + offset)
        timed.append(TimedWord(word=word.word, start=start, end=end))
        prev_end = end
    return timed


class TextMeasurer:
    """Measures advance widths with the font file the renderer will use."""

    def __init__(self, font_path: str | None, size: int):
        self.font_path = font_path
        self.size = max(1, size)
        self.font = self._load_font()

    def _load_font(self) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        if self.font_path:
            try:
                return ImageFont.truetype(self.font_path, self.size)
            except OSError as e:
                logger.warning(f"[CAPTIONS] Could not load {self.font_path} for measuring: {e}")
        return ImageFont.load_default(size=self.size)

    def measure(self, text: str) -> float:
        return self.font.getlength(text)


def wrap_words(
    words: list[TimedWord],
    measure: Callable[[str], float],
    max_width: float,
) -> list[list[TimedWord]]:
    """Greedy line fill: a word moves to a new line when it would overflow.

    A single word wider than max_width still gets a line of its own.
    """
    space_width = measure(" ")
    lines: list[list[TimedWord]] = []
    line: list[TimedWord] = []
    line_width = 0.0

    for word in words:
        word_width = measure(word.word)
        needed = space_width + word_width if line else word_width
        if line and line_width + needed > max_width:
            lines.append(line)
            line = [word]
            line_width = word_width
        else:
            line.append(word)
            line_width += needed

    if line:
        lines.append(line)
    return lines


def layout_caption(
    caption: Caption,
    width: int,
    height: int,
    font_path: str | None = None,
) -> list[CaptionLine]:
    """Split a caption into subtitle events.

    Plain captions become one event. Word-timed captions are wrapped at 85%
    of the frame width unless the preview already measured them
    (``line_width_px`` set), in which case they are one line already.
    """
    if not caption.words:
        return [CaptionLine(caption=caption, text=caption.text, start=caption.start_time, end=caption.end_time)]

    words = normalize_word_timings(caption)
    if caption.line_width_px:
        groups = [words]
    else:
        size = scaled_font_size(caption.font_size, font_scale(width, height))
        measurer = TextMeasurer(font_path, size)
        groups = wrap_words(words, measurer.measure, width * MAX_LINE_WIDTH_RATIO)

    return [
        CaptionLine(
            caption=caption,
            text=" ".join(w.word for w in group),
            start=group[0].start,
            end=group[-1].end,
            words=group,
        )
        for group in groups
    ]
