"""Interpolation helpers for time-varying effect parameters.

Usage:
    from vexport.utils.interpolation import interpolate, round_half_up

    # Block size halfway through a 4 -> 48 ramp
    size = interpolate(3.5, [2.0, 5.0], [4, 48])  # -> 26.0
"""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def interpolate(
    t: float,
    input_range: list[float],
    output_range: list[float],
) -> float:
    """Piecewise-linear mapping of ``t`` from input_range onto output_range.

    Outside the range the end values are held.

    Args:
        t: Time (or any input value)
        input_range: Strictly increasing breakpoints [a, b, ...]
        output_range: Output value at each breakpoint

    Returns:
        Interpolated value

    Raises:
        ValueError: If the ranges are malformed
    """
    if len(input_range) != len(output_range):
        raise ValueError("input_range and output_range must have the same length")
    if len(input_range) < 2:
        raise ValueError("input_range must have at least 2 values")
    for i in range(1, len(input_range)):
        if input_range[i] <= input_range[i - 1]:
            raise ValueError("input_range must be monotonically increasing")

    if t <= input_range[0]:
        return output_range[0]
    if t >= input_range[-1]:
        return output_range[-1]

    segment_idx = len(input_range) - 2
    for i in range(1, len(input_range)):
        if t <= input_range[i]:
            segment_idx = i - 1
            break

    in_start = input_range[segment_idx]
    in_end = input_range[segment_idx + 1]
    out_start = output_range[segment_idx]
    out_end = output_range[segment_idx + 1]

    progress = (t - in_start) / (in_end - in_start)
    return out_start + progress * (out_end - out_start)
