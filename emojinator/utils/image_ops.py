from __future__ import annotations

from typing import List, Tuple

import numpy as np
from PIL import Image


def clamp01(x: np.ndarray | float) -> np.ndarray | float:
    return np.clip(x, 0.0, 1.0)


def flatten_alpha(rgba: np.ndarray, bg: Tuple[int, int, int] = (255, 255, 255)) -> np.ndarray:
    """Composite an RGBA buffer onto an opaque color, returning uint8 RGB."""
    px = rgba.astype(np.float32)
    a = px[..., 3:4] / 255.0
    base = np.asarray(bg, dtype=np.float32).reshape(1, 1, 3)
    out = px[..., 0:3] * a + base * (1.0 - a)
    return np.floor(out + 0.5).clip(0, 255).astype(np.uint8)


def scale_alpha(img: Image.Image, factor: float) -> Image.Image:
    """Return a copy of an RGBA image with its alpha channel multiplied by ``factor``."""
    factor = float(clamp01(factor))
    if factor >= 1.0:
        return img
    arr = np.array(img.convert("RGBA"), dtype=np.float32)
    arr[..., 3] *= factor
    return Image.fromarray(np.floor(arr + 0.5).astype(np.uint8))


def tint(alpha: Image.Image, color: Tuple[int, int, int, int]) -> Image.Image:
    """Solid ``color`` layer whose alpha is ``alpha`` scaled by the color's own alpha."""
    a = np.array(alpha, dtype=np.float32) * (color[3] / 255.0)
    h, w = a.shape
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[..., 0] = color[0]
    out[..., 1] = color[1]
    out[..., 2] = color[2]
    out[..., 3] = np.floor(a + 0.5).astype(np.uint8)
    return Image.fromarray(out)


def cover_fit_box(img_w: int, img_h: int, canvas: int, scale: float, offset_x: float, offset_y: float):
    """Placement of an image covering a square canvas: (x, y, width, height)."""
    aspect = img_w / img_h
    if aspect > 1.0:
        draw_h = canvas * scale
        draw_w = draw_h * aspect
    else:
        draw_w = canvas * scale
        draw_h = draw_w / aspect
    x = (canvas - draw_w) / 2 + offset_x
    y = (canvas - draw_h) / 2 + offset_y
    return x, y, draw_w, draw_h


def upscale_nearest(img: Image.Image, factor: int) -> Image.Image:
    if factor == 1:
        return img.copy()
    return img.resize((img.width * factor, img.height * factor), Image.NEAREST)


def slice_tiles(img: Image.Image, grid: int) -> List[List[Image.Image]]:
    tw = img.width // grid
    th = img.height // grid
    return [
        [img.crop((c * tw, r * th, (c + 1) * tw, (r + 1) * th)) for c in range(grid)]
        for r in range(grid)
    ]
