"""Canvas sizing and content placement for the resize modes."""

import math
from typing import NamedTuple, Tuple

RESIZE_MODES = ("contain", "cover", "fill", "inside", "outside")

# Factor applied to both axes when an attempt cannot meet the budget.
SHRINK_STEP = 0.9


class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int


def _round(value: float) -> int:
    # Half away from zero for positive values, not Python's banker's rounding.
    return math.floor(value + 0.5)


def pre_downscale(
    width: int, height: int, max_width: int, max_height: int, divisor: float
) -> Tuple[int, int]:
    """Divide both axes by ``divisor`` when the source is far beyond the bounds."""
    if width > max_width * divisor or height > max_height * divisor:
        return max(1, math.floor(width / divisor)), max(1, math.floor(height / divisor))
    return width, height


def canvas_size(
    width: int, height: int, max_width: int, max_height: int
) -> Tuple[int, int]:
    """Fit the canvas inside the max bounds keeping aspect ratio, never upscaling."""
    scale = min(max_width / width, max_height / height, 1.0)
    return max(1, _round(width * scale)), max(1, _round(height * scale))


def draw_rect(
    source_width: int, source_height: int, width: int, height: int, mode: str
) -> Rect:
    """Where the whole source lands on a ``width`` x ``height`` canvas.

    The rectangle may extend past the canvas edges (cover, outside); the
    canvas clips it.
    """
    if mode == "fill":
        return Rect(0, 0, width, height)

    scale_x = width / source_width
    scale_y = height / source_height
    if mode == "contain":
        scale = min(scale_x, scale_y)
    elif mode == "cover":
        scale = max(scale_x, scale_y)
    elif mode == "inside":
        scale = min(scale_x, scale_y, 1.0)
    elif mode == "outside":
        scale = max(scale_x, scale_y, 1.0)
    else:
        raise ValueError(f"Unknown resize mode '{mode}'")

    dw = max(1, _round(source_width * scale))
    dh = max(1, _round(source_height * scale))
    return Rect(math.floor((width - dw) / 2), math.floor((height - dh) / 2), dw, dh)


def shrink(width: int, height: int, factor: float = SHRINK_STEP) -> Tuple[int, int]:
    """Scale both axes down by ``factor``, never below 1x1."""
    return max(1, math.floor(width * factor)), max(1, math.floor(height * factor))
