"""Caption compilation to an ASS subtitle document.

All captions of a job go into one .ass file burned in by a single ``ass``
filter, instead of one drawtext filter per word, so the filter graph stays
short no matter how many words are on screen.

Layout rules follow the editor preview:
- Font sizes and stroke widths are scaled by output width / reference width
  (1920 landscape, 1080 portrait).
- Each line is centered horizontally and vertically centered on
  ``position_y`` percent of the frame height.
- Word-timed captions with a highlight colour are karaoke: a word is drawn in
  the highlight colour exactly while it is spoken and in the caption colour
  before and after.
"""

import logging
import re
from dataclasses import dataclass

from vexport.render.text_layout import (
    CaptionLine,
    font_scale,
    layout_caption,
    scaled_font_size,
    validate_captions,
)
from vexport.schemas.export import Caption
from vexport.utils.colors import is_transparent, to_ass_color
from vexport.utils.interpolation import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "Arial"
MIN_FONT_SIZE = 8
BOX_PADDING_PX = 6  # at reference resolution

# Zero-width no-break joiner placed after a literal backslash so the renderer
# does not read it as the start of an override (\N, \n, \h, \{, \}).
WORD_JOINER = "\u2060"

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, "
    "BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, "
    "BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"

# Alignment 5 = middle-center: \pos() addresses the line's center point
ALIGNMENT_MIDDLE_CENTER = 5


# =============================================================================
# Text helpers
# =============================================================================


def to_centiseconds(seconds: float) -> int:
    return round_half_up(seconds * 100)


def format_ass_time(centiseconds: int) -> str:
    """Centiseconds -> ``H:MM:SS.cc``."""
    centiseconds = max(0, centiseconds)
    h, rest = divmod(centiseconds, 360000)
    m, rest = divmod(rest, 6000)
    s, cs = divmod(rest, 100)
    return f"{h}:{m:02d}:{s:02d}.{cs:02d}"


def escape_ass_text(text: str) -> str:
    """Escape caption text so the renderer shows it verbatim."""
    text = re.sub(r"\\(?=[nNh{}])", "\\\\" + WORD_JOINER, text)
    text = text.replace("{", "\\{").replace("}", "\\}")
    return text.replace("\r\n", "\n").replace("\n", "\\N")


_UNESCAPE_RE = re.compile(r"\\N|\\\{|\\\}|\\" + WORD_JOINER)


def unescape_ass_text(escaped: str) -> str:
    """Visible text of an escaped dialogue fragment (inverse of escape_ass_text)."""
    replacements = {
        "\\N": "\n",
        "\\{": "{",
        "\\}": "}",
        "\\" + WORD_JOINER: "\\",
    }
    return _UNESCAPE_RE.sub(lambda m: replacements[m.group(0)], escaped)


def ffmpeg_filter_path(path: str) -> str:
    """Quote-safe path for a filter option value inside single quotes."""
    return (
        path.replace("\\", "/")
        .replace(":", "\\:")
        .replace("'", "'\\\\\\''")
    )


def build_ass_filter(ass_path: str, fonts_dir: str | None = None) -> str:
    filter_str = f"ass='{ffmpeg_filter_path(ass_path)}'"
    if fonts_dir:
        filter_str += f":fontsdir='{ffmpeg_filter_path(fonts_dir)}'"
    return filter_str


# =============================================================================
# Karaoke
# =============================================================================


@dataclass
class KaraokeSyllable:
    """One word with start/end on the absolute centisecond grid."""

    text: str
    start_cs: int
    end_cs: int


def karaoke_syllables(line: CaptionLine) -> list[KaraokeSyllable]:
    """Quantize word times to whole centiseconds without accumulating drift.

    Boundaries are rounded from absolute times rather than summing rounded
    durations. Every word lasts at least 1cs and never starts before the
    previous word ended.
    """
    cursor = to_centiseconds(line.start)
    syllables = []
    for word in line.words:
        start = max(cursor, to_centiseconds(word.start))
        end = max(start + 1, to_centiseconds(word.end))
        syllables.append(KaraokeSyllable(text=word.word, start_cs=start, end_cs=end))
        cursor = end
    return syllables


def highlighted_word_index(line: CaptionLine, t: float) -> int | None:
    """Index of the word drawn in the highlight colour at time ``t``, if any."""
    if not line.is_karaoke:
        return None
    t_cs = t * 100
    for i, syllable in enumerate(karaoke_syllables(line)):
        if syllable.start_cs <= t_cs < syllable.end_cs:
            return i
    return None


def build_karaoke_text(line: CaptionLine, highlight: str, normal: str) -> tuple[str, int]:
    """Dialogue text for a karaoke line and the event end in centiseconds.

    Each word is a ``\\k`` syllable. The style's secondary colour (shown
    before a syllable is reached) is the caption colour; the syllable's
    primary colour is overridden to the highlight and reset to the caption
    colour by a zero-length ``\\t`` at the word's end. Silence between words
    is an empty syllable.
    """
    event_start = to_centiseconds(line.start)
    cursor = event_start
    parts = []
    for syllable in karaoke_syllables(line):
        gap = syllable.start_cs - cursor
        if gap > 0:
            parts.append(f"{{\\k{gap}}}")
        duration = syllable.end_cs - syllable.start_cs
        reset_ms = (syllable.end_cs - event_start) * 10
        parts.append(
            f"{{\\1c{highlight}\\k{duration}\\t({reset_ms},{reset_ms},\\1c{normal})}}"
            f"{escape_ass_text(syllable.text)} "
        )
        cursor = syllable.end_cs

    text = "".join(parts).rstrip(" ")
    return text, max(cursor, to_centiseconds(line.end))


# =============================================================================
# Document
# =============================================================================


class CaptionCompiler:
    """Builds the subtitle document for one export.

    Args:
        width, height: Output frame size (also the script's PlayRes)
        font_paths: (family, bold) -> resolved font file, used to measure
            word-timed captions that need wrapping
    """

    def __init__(
        self,
        width: int,
        height: int,
        font_paths: dict[tuple[str | None, bool], str] | None = None,
    ):
        self.width = width
        self.height = height
        self.scale = font_scale(width, height)
        self.font_paths = font_paths or {}

    def compile_lines(self, captions: list[Caption]) -> list[tuple[int, CaptionLine]]:
        """Validate, sort and lay out captions as (style index, line) pairs."""
        lines = []
        for index, caption in enumerate(validate_captions(captions)):
            font_path = self.font_paths.get((caption.font_family, caption.bold))
            for line in layout_caption(caption, self.width, self.height, font_path):
                lines.append((index, line))
        return lines

    def style_line(self, index: int, caption: Caption) -> str:
        fontname = (caption.font_family or DEFAULT_FONT_FAMILY).replace(",", "")
        fontsize = max(MIN_FONT_SIZE, scaled_font_size(caption.font_size, self.scale))
        primary = to_ass_color(caption.color or "white", force_alpha=1.0)
        bold = -1 if caption.bold else 0

        if not is_transparent(caption.background):
            # Opaque box behind the text, drawn in the outline colour
            border_style = 3
            box = to_ass_color(caption.background)
            outline_colour, back_colour = box, box
            outline = max(1, round_half_up(BOX_PADDING_PX * self.scale))
        else:
            border_style = 1
            outline = round_half_up((caption.stroke_width or 0) * self.scale)
            outline_colour = (
                to_ass_color(caption.stroke_color or "#000000", force_alpha=1.0)
                if outline > 0
                else "&H00000000"
            )
            back_colour = "&H00000000"

        return (
            f"Style: Cap_{index},{fontname},{fontsize},{primary},{primary},{outline_colour},"
            f"{back_colour},{bold},0,0,0,100,100,0,0,{border_style},{outline},0,"
            f"{ALIGNMENT_MIDDLE_CENTER},10,10,10,1"
        )

    def dialogue_line(self, index: int, line: CaptionLine) -> str:
        caption = line.caption
        x = round_half_up(self.width / 2)
        y = round_half_up(caption.position_y * self.height / 100)
        pos = f"{{\\pos({x},{y})}}"

        start_cs = to_centiseconds(line.start)
        if line.is_karaoke:
            normal = to_ass_color(caption.color or "white", force_alpha=1.0)
            highlight = to_ass_color(caption.highlight_color, force_alpha=1.0)
            body, end_cs = build_karaoke_text(line, highlight, normal)
        else:
            body, end_cs = escape_ass_text(line.text), to_centiseconds(line.end)

        return (
            f"Dialogue: 0,{format_ass_time(start_cs)},{format_ass_time(end_cs)},"
            f"Cap_{index},,0,0,0,,{pos}{body}"
        )

    def build_document(self, captions: list[Caption]) -> str:
        valid = validate_captions(captions)
        lines = self.compile_lines(valid)

        out = [
            "[Script Info]",
            "ScriptType: v4.00+",
            f"PlayResX: {self.width}",
            f"PlayResY: {self.height}",
            # No automatic wrapping: lines were already broken like the preview
            "WrapStyle: 2",
            "ScaledBorderAndShadow: yes",
            "",
            "[V4+ Styles]",
            STYLE_FORMAT,
        ]
        out.extend(self.style_line(i, caption) for i, caption in enumerate(valid))
        out.extend(["", "[Events]", EVENT_FORMAT])
        out.extend(self.dialogue_line(i, line) for i, line in lines)
        return "\n".join(out) + "\n"

    def write(self, captions: list[Caption], ass_path: str) -> str | None:
        """Write the document; None when no caption survives validation."""
        if not validate_captions(captions):
            return None
        document = self.build_document(captions)
        with open(ass_path, "w", encoding="utf-8") as f:
            f.write(document)
        logger.info(f"[CAPTIONS] Wrote {ass_path}")
        return ass_path
