"""Colour parsing for caption styles and effect parameters.

The editor stores colours the way a canvas accepts them: ``#rrggbb``,
``#rrggbbaa``, ``rgb()/rgba()``, a few names, and ``black@0.5`` (alpha
suffix). Everything is normalized to an (r, g, b, a) tuple with a in [0, 1].
"""

import re

_RGBA_RE = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([\d.]+)\s*)?\)"
)

_NAMED_COLORS = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "yellow": (255, 255, 0),
}


def _clamp_alpha(a: float) -> float:
    return max(0.0, min(1.0, a))


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Parse ``#rgb`` or ``#rrggbb`` (alpha ignored)."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = "".join([c * 2 for c in hex_color])
    return (
        int(hex_color[0:2], 16),
        int(hex_color[2:4], 16),
        int(hex_color[4:6], 16),
    )


def parse_color(color: str | None) -> tuple[int, int, int, float]:
    """Parse a canvas colour string into (r, g, b, alpha).

    Unknown strings fall back to opaque white, matching what the preview
    canvas does with an invalid fillStyle.
    """
    if not color:
        return (255, 255, 255, 0.0)
    color = color.strip()
    lowered = color.lower()

    match = _RGBA_RE.match(lowered)
    if match:
        r, g, b = (min(255, int(match.group(i))) for i in (1, 2, 3))
        a = float(match.group(4)) if match.group(4) is not None else 1.0
        return (r, g, b, _clamp_alpha(a))

    if re.fullmatch(r"#[0-9a-f]{3}|#[0-9a-f]{6}", lowered):
        return (*hex_to_rgb(lowered), 1.0)
    if re.fullmatch(r"#[0-9a-f]{8}", lowered):
        return (*hex_to_rgb(lowered[:7]), int(lowered[7:9], 16) / 255)

    if lowered == "transparent":
        return (0, 0, 0, 0.0)

    # ffmpeg-style "name@alpha"
    name, _, alpha = lowered.partition("@")
    if name in _NAMED_COLORS:
        a = 1.0
        if alpha:
            try:
                a = float(alpha)
            except ValueError:
                a = 1.0
        return (*_NAMED_COLORS[name], _clamp_alpha(a))

    return (255, 255, 255, 1.0)


def is_transparent(color: str | None) -> bool:
    return parse_color(color)[3] <= 0


def to_ass_color(color: str | None, force_alpha: float | None = None) -> str:
    """Convert to the subtitle renderer's ``&HAABBGGRR`` form.

    The subtitle alpha byte is inverted (00 = opaque, FF = invisible).
    """
    r, g, b, a = parse_color(color)
    if force_alpha is not None:
        a = _clamp_alpha(force_alpha)
    aa = round((1 - a) * 255)
    return f"&H{aa:02X}{b:02X}{g:02X}{r:02X}"
