"""Effect filter compilation.

Lowers timed effects to ffmpeg filters, each gated to its window with an
``enable`` expression so it is a no-op outside ``[timeline_start,
timeline_end)``. Effects are chained by type in a fixed order: pixel-grid
effects first, then colour remaps, then chroma shifts (captions come last,
on top of everything).
"""

import logging
from typing import assert_never

from vexport.schemas.export import (
    AsciiEffect,
    ChromaticAberrationEffect,
    DitherEffect,
    DuotoneEffect,
    Effect,
    PixelateEffect,
)
from vexport.utils.colors import hex_to_rgb
from vexport.utils.interpolation import clamp, interpolate, round_half_up

logger = logging.getLogger(__name__)

# pixelize takes a constant integer block size, so a size ramp is drawn as a
# staircase of equal-length steps
PIXELATE_STEPS = 16
MIN_PIXELATE_BLOCK = 2

ASCII_CELL_RANGE = (4, 20)
ASCII_CONTRAST_RANGE = (0.5, 2.0)
DITHER_LEVEL_RANGE = (2, 16)
CHROMATIC_OFFSET_RANGE = (0, 20)

EFFECT_ORDER: list[type] = [
    PixelateEffect,
    DitherEffect,
    DuotoneEffect,
    AsciiEffect,
    ChromaticAberrationEffect,
]


def build_enable_expr(start_s: float, end_s: float) -> str:
    """Half-open window ``start <= t < end`` so adjacent windows never overlap."""
    return f"gte(t,{start_s:.4f})*lt(t,{end_s:.4f})"


def _enable(start_s: float, end_s: float) -> str:
    return f"enable='{build_enable_expr(start_s, end_s)}'"


# =============================================================================
# Pixelate
# =============================================================================


def pixelate_steps(effect: PixelateEffect) -> list[tuple[float, float, int]]:
    """(t0, t1, block size) per step; sizes sampled at each step's midpoint."""
    start, end = effect.timeline_start, effect.timeline_end
    step = (end - start) / PIXELATE_STEPS
    steps = []
    for i in range(PIXELATE_STEPS):
        t0 = start + i * step
        t1 = end if i == PIXELATE_STEPS - 1 else start + (i + 1) * step
        steps.append((t0, t1, pixelate_block_size_at(effect, t0 + step / 2)))
    return steps


def pixelate_block_size_at(effect: PixelateEffect, t: float) -> int:
    """Block size the linear ramp gives at time ``t`` (rounded, at least 2)."""
    size = interpolate(
        t,
        [effect.timeline_start, effect.timeline_end],
        [effect.start_block_size, effect.end_block_size],
    )
    return max(MIN_PIXELATE_BLOCK, round_half_up(size))


def compile_pixelate(effect: PixelateEffect) -> list[str]:
    return [
        f"pixelize=width={size}:height={size}:{_enable(t0, t1)}"
        for t0, t1, size in pixelate_steps(effect)
    ]


# =============================================================================
# Colour and texture effects
# =============================================================================


def compile_duotone(effect: DuotoneEffect) -> list[str]:
    """Desaturate, then map black->shadow and white->highlight per channel."""
    shadow = hex_to_rgb(effect.shadow_color)
    highlight = hex_to_rgb(effect.highlight_color)
    enable = _enable(effect.timeline_start, effect.timeline_end)
    curves = ":".join(
        f"{channel}='0/{s / 255:.4f} 1/{h / 255:.4f}'"
        for channel, s, h in zip(("red", "green", "blue"), shadow, highlight)
    )
    return [
        f"hue=s=0:{enable}",
        f"curves={curves}:{enable}",
    ]


def compile_ascii(effect: AsciiEffect) -> list[str]:
    """Coarse grayscale blocks with boosted contrast."""
    cell = int(clamp(round_half_up(effect.cell_size), *ASCII_CELL_RANGE))
    contrast = clamp(effect.contrast, *ASCII_CONTRAST_RANGE)
    enable = _enable(effect.timeline_start, effect.timeline_end)
    return [
        f"pixelize=width={cell}:height={cell}:{enable}",
        f"hue=s=0:{enable}",
        f"eq=contrast={contrast:.3f}:{enable}",
    ]


def compile_dither(effect: DitherEffect) -> list[str]:
    """Temporal noise, then posterize each RGB channel to ``levels`` steps."""
    levels = int(clamp(round_half_up(effect.levels), *DITHER_LEVEL_RANGE))
    step = max(1, round_half_up(255 / (levels - 1)))
    amount = clamp(effect.amount, 0.0, 1.0)
    noise = round_half_up(6 + amount * 34)
    enable = _enable(effect.timeline_start, effect.timeline_end)
    quantize = f"trunc(val/{step})*{step}"
    return [
        f"noise=alls={noise}:allf=t+u:{enable}",
        f"lutrgb=r='{quantize}':g='{quantize}':b='{quantize}':{enable}",
    ]


def compile_chromatic_aberration(effect: ChromaticAberrationEffect) -> list[str]:
    """Red shifted right, blue shifted left."""
    offset = int(clamp(round_half_up(effect.offset_px), *CHROMATIC_OFFSET_RANGE))
    enable = _enable(effect.timeline_start, effect.timeline_end)
    return [f"rgbashift=rh={offset}:rv=0:gh=0:gv=0:bh={-offset}:bv=0:{enable}"]


# =============================================================================
# Dispatch
# =============================================================================


def compile_effect(effect: Effect) -> list[str]:
    if isinstance(effect, PixelateEffect):
        return compile_pixelate(effect)
    elif isinstance(effect, DitherEffect):
        return compile_dither(effect)
    elif isinstance(effect, DuotoneEffect):
        return compile_duotone(effect)
    elif isinstance(effect, AsciiEffect):
        return compile_ascii(effect)
    elif isinstance(effect, ChromaticAberrationEffect):
        return compile_chromatic_aberration(effect)
    else:
        assert_never(effect)


def compile_effects(effects: list[Effect]) -> list[str]:
    """All effect filters in application order.

    Effects of the same type keep their job order.
    """
    ordered = sorted(effects, key=lambda e: EFFECT_ORDER.index(type(e)))
    filters = []
    for effect in ordered:
        effect_filters = compile_effect(effect)
        logger.info(
            f"[EFFECTS] {effect.type} {effect.timeline_start:.3f}-{effect.timeline_end:.3f}s "
            f"-> {len(effect_filters)} filters"
        )
        filters.extend(effect_filters)
    return filters
