from __future__ import annotations

import colorsys
from typing import Tuple

from PIL import ImageColor

from .state import TRANSPARENT

RGBA = Tuple[int, int, int, int]


def parse_color(color: str, alpha: float = 1.0) -> RGBA:
    """Parse a CSS-style color (hex, rgb(), hsl(), named) into RGBA.

    ``alpha`` scales whatever alpha the color string itself carries.
    """
    if color.strip().lower() == TRANSPARENT:
        return (0, 0, 0, 0)
    rgba = ImageColor.getcolor(color, "RGBA")
    a = int(round(rgba[3] * max(0.0, min(1.0, alpha))))
    return (rgba[0], rgba[1], rgba[2], a)


def to_hex(rgb) -> str:
    return "#{:02x}{:02x}{:02x}".format(*(int(c) for c in rgb[:3]))


def apply_hue_shift(color: str, hue_shift: float) -> str:
    # A non-zero shift replaces the color with the fully saturated hue at that angle.
    if hue_shift == 0:
        return color
    h = (hue_shift % 360) / 360.0
    r, g, b = colorsys.hls_to_rgb(h, 0.5, 1.0)
    return to_hex((round(r * 255), round(g * 255), round(b * 255)))
