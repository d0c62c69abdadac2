from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter

from ..utils.fonts import FontResolver, ResolvedFont
from ..utils.image_ops import cover_fit_box, scale_alpha, tint
from .color import apply_hue_shift, parse_color
from .effects import CANVAS_SIZE, IDENTITY_TRANSFORM, FrameTransform
from .errors import SurfaceError
from .state import TRANSPARENT, BackgroundImage, LayoutMode, StyleState

LINE_HEIGHT = 1.2
FILL_PADDING = 4
GLOW_BLUR = 20.0
ITALIC_SHEAR = 0.2

# Text is drawn onto a layer three canvases wide so content pushed in from
# outside the visible square by scale/rotation is not clipped before the transform.
MARGIN = CANVAS_SIZE
LAYER_SIZE = CANVAS_SIZE + 2 * MARGIN
CENTER = CANVAS_SIZE / 2


class RasterSurface:
    """The 128x128 RGBA bitmap every render call writes into."""

    def __init__(self, size: int = CANVAS_SIZE):
        try:
            self.image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        except (ValueError, MemoryError) as e:
            raise SurfaceError(f"could not allocate a {size}x{size} surface: {e}") from e

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def clear(self) -> None:
        self.image.paste((0, 0, 0, 0), (0, 0) + self.image.size)

    def pixels(self) -> np.ndarray:
        return np.array(self.image, dtype=np.uint8)


def truncate_visible(text: str, count: int) -> str:
    """Keep the first ``count`` non-newline characters, preserving newlines between them."""
    if count <= 0:
        return ""
    kept = 0
    for i, ch in enumerate(text):
        if ch != "\n":
            kept += 1
            if kept == count:
                return text[: i + 1]
    return text


def _translate(tx: float, ty: float) -> np.ndarray:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])


def _scale(sx: float, sy: float) -> np.ndarray:
    return np.array([[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]])


def _rotate(theta: float) -> np.ndarray:
    c, s = math.cos(theta), math.sin(theta)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def _shear_x(k: float) -> np.ndarray:
    return np.array([[1.0, -k, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])


def frame_matrix(transform: FrameTransform) -> np.ndarray:
    """Canvas-space matrix: translate by the offset, rotate, then scale, all about the center."""
    return (
        _translate(CENTER + transform.offset_x, CENTER + transform.offset_y)
        @ _rotate(transform.rotation)
        @ _scale(transform.scale, transform.scale)
        @ _translate(-CENTER, -CENTER)
    )


def _warp(mask: Image.Image, forward: np.ndarray) -> Image.Image:
    inv = np.linalg.inv(forward)
    data = (inv[0, 0], inv[0, 1], inv[0, 2], inv[1, 0], inv[1, 1], inv[1, 2])
    return mask.transform((CANVAS_SIZE, CANVAS_SIZE), Image.AFFINE, data, resample=Image.BICUBIC)


def auto_fit_font_size(
    text: str,
    fonts: FontResolver,
    font_id: str = "noto-sans-jp",
    max_size: int = 128,
    min_size: int = 8,
    padding: int = 8,
) -> int:
    """Largest font size at which every line and the whole block fit inside the padded canvas."""
    if not text:
        return 32
    lines = text.split("\n")
    target = CANVAS_SIZE - padding * 2
    for size in range(max_size, min_size - 1, -1):
        font = fonts.resolve(font_id, size).font
        widest = max(font.getlength(line) for line in lines)
        if widest <= target and len(lines) * size * LINE_HEIGHT <= target:
            return size
    return min_size


class SceneRenderer:
    def __init__(self, fonts: Optional[FontResolver] = None):
        self.fonts = fonts or FontResolver()

    def new_surface(self) -> RasterSurface:
        return RasterSurface(CANVAS_SIZE)

    def render(
        self,
        surface: RasterSurface,
        state: StyleState,
        transform: FrameTransform = IDENTITY_TRANSFORM,
        background: Optional[Image.Image] = None,
    ) -> None:
        img = getattr(surface, "image", None)
        if img is None or img.mode != "RGBA" or img.size != (CANVAS_SIZE, CANVAS_SIZE):
            raise SurfaceError(f"render target must be a {CANVAS_SIZE}x{CANVAS_SIZE} RGBA surface")

        surface.clear()
        if state.background_color.strip().lower() != TRANSPARENT:
            img.paste(parse_color(state.background_color), (0, 0, CANVAS_SIZE, CANVAS_SIZE))
        if background is not None:
            self._draw_background(img, background, state.background_image)

        if not state.text:
            return
        text = state.text
        if transform.visible_chars is not None:
            text = truncate_visible(text, transform.visible_chars)
        if not text.strip() or transform.opacity <= 0 or transform.scale <= 0:
            return

        font = self.fonts.resolve(state.font.id, state.font.size, state.font.bold, state.font.italic)
        fill_color = parse_color(
            apply_hue_shift(state.text_color, transform.hue_shift),
            state.text_opacity * transform.opacity,
        )
        outline_width = state.stroke.width if state.stroke.enabled else 0

        fill_mask = Image.new("L", (LAYER_SIZE, LAYER_SIZE), 0)
        outline_mask = Image.new("L", (LAYER_SIZE, LAYER_SIZE), 0) if outline_width > 0 else None
        if transform.char_offsets is not None:
            self._draw_chars(fill_mask, outline_mask, text, font, state, outline_width, transform.char_offsets)
            layout = self._layout_matrix(None, state, LayoutMode.NORMAL)
        else:
            self._draw_lines(fill_mask, outline_mask, text, font, state, outline_width)
            layout = self._layout_matrix(
                fill_mask if outline_mask is None else ImageChops.lighter(fill_mask, outline_mask),
                state,
                state.layout_mode,
            )

        if font.synthetic_italic:
            layout = _translate(CENTER, CENTER) @ _shear_x(ITALIC_SHEAR) @ _translate(-CENTER, -CENTER) @ layout
        forward = frame_matrix(transform) @ layout

        fill_t = _warp(fill_mask, forward)
        outline_t = _warp(outline_mask, forward) if outline_mask is not None else None
        shape_t = fill_t if outline_t is None else ImageChops.lighter(fill_t, outline_t)

        if transform.glow_intensity > 0:
            img.alpha_composite(self._glow(shape_t, fill_color, transform.glow_intensity))
        elif state.shadow_spec.enabled:
            img.alpha_composite(self._shadow(shape_t, state, transform.opacity))

        if outline_t is not None:
            img.alpha_composite(tint(outline_t, parse_color(state.stroke.color, transform.opacity)))
        img.alpha_composite(tint(fill_t, fill_color))

    def render_new(
        self,
        state: StyleState,
        transform: FrameTransform = IDENTITY_TRANSFORM,
        background: Optional[Image.Image] = None,
    ) -> RasterSurface:
        surface = self.new_surface()
        self.render(surface, state, transform, background)
        return surface

    def _draw_background(self, img: Image.Image, bitmap: Image.Image, spec: BackgroundImage) -> None:
        if bitmap.width <= 0 or bitmap.height <= 0 or spec.scale <= 0 or spec.opacity <= 0:
            return
        x, y, w, h = cover_fit_box(bitmap.width, bitmap.height, CANVAS_SIZE, spec.scale, spec.offset_x, spec.offset_y)
        sx = bitmap.width / w
        sy = bitmap.height / h
        placed = bitmap.convert("RGBA").transform(
            (CANVAS_SIZE, CANVAS_SIZE),
            Image.AFFINE,
            (sx, 0.0, -x * sx, 0.0, sy, -y * sy),
            resample=Image.BILINEAR,
        )
        img.alpha_composite(scale_alpha(placed, spec.opacity))

    @staticmethod
    def _synthetic_bold_width(font: ResolvedFont, size: int) -> int:
        return max(1, round(size / 30)) if font.synthetic_bold else 0

    def _draw_lines(self, fill_mask, outline_mask, text, font: ResolvedFont, state: StyleState, outline_width: int):
        lines = text.split("\n")
        size = state.font.size
        line_height = size * LINE_HEIGHT
        start_y = (CANVAS_SIZE - len(lines) * line_height) / 2 + line_height / 2
        bold = self._synthetic_bold_width(font, size)
        fd = ImageDraw.Draw(fill_mask)
        od = ImageDraw.Draw(outline_mask) if outline_mask is not None else None
        for i, line in enumerate(lines):
            if not line:
                continue
            xy = (CENTER + MARGIN, start_y + i * line_height + MARGIN)
            if od is not None:
                od.text(xy, line, font=font.font, fill=255, anchor="mm",
                        stroke_width=outline_width + bold, stroke_fill=255)
            fd.text(xy, line, font=font.font, fill=255, anchor="mm", stroke_width=bold, stroke_fill=255)

    def _draw_chars(
        self,
        fill_mask,
        outline_mask,
        text,
        font: ResolvedFont,
        state: StyleState,
        outline_width: int,
        offsets: Sequence[float],
    ):
        lines = text.split("\n")
        size = state.font.size
        line_height = size * LINE_HEIGHT
        start_y = (CANVAS_SIZE - len(lines) * line_height) / 2 + line_height / 2
        bold = self._synthetic_bold_width(font, size)
        fd = ImageDraw.Draw(fill_mask)
        od = ImageDraw.Draw(outline_mask) if outline_mask is not None else None
        index = 0
        for i, line in enumerate(lines):
            widths = [font.font.getlength(ch) for ch in line]
            x = CENTER - sum(widths) / 2
            y = start_y + i * line_height
            for ch, w in zip(line, widths):
                dy = offsets[index] if index < len(offsets) else 0.0
                xy = (x + w / 2 + MARGIN, y + dy + MARGIN)
                if not ch.isspace():
                    if od is not None:
                        od.text(xy, ch, font=font.font, fill=255, anchor="mm",
                                stroke_width=outline_width + bold, stroke_fill=255)
                    fd.text(xy, ch, font=font.font, fill=255, anchor="mm", stroke_width=bold, stroke_fill=255)
                x += w
                index += 1

    def _layout_matrix(self, mask: Optional[Image.Image], state: StyleState, mode: LayoutMode) -> np.ndarray:
        """Map layer coordinates onto canvas coordinates for the given layout mode."""
        if mode == LayoutMode.NORMAL:
            return _translate(state.text_offset.x - MARGIN, state.text_offset.y - MARGIN)
        bbox = mask.getbbox() if mask is not None else None
        if bbox is None:
            return _translate(-MARGIN, -MARGIN)
        left, top, right, bottom = bbox
        target = CANVAS_SIZE - 2 * FILL_PADDING
        sx = target / max(1, right - left)
        sy = target / max(1, bottom - top)
        if mode == LayoutMode.FIT_FILL:
            sx = sy = min(sx, sy)
        return _translate(CENTER, CENTER) @ _scale(sx, sy) @ _translate(-(left + right) / 2, -(top + bottom) / 2)

    def _glow(self, shape: Image.Image, color, intensity: float) -> Image.Image:
        blurred = shape.filter(ImageFilter.GaussianBlur(radius=GLOW_BLUR * intensity / 2))
        return tint(blurred, color)

    def _shadow(self, shape: Image.Image, state: StyleState, opacity: float) -> Image.Image:
        spec = state.shadow_spec
        shifted = Image.new("L", shape.size, 0)
        shifted.paste(shape, (spec.offset_x, spec.offset_y))
        if spec.blur > 0:
            shifted = shifted.filter(ImageFilter.GaussianBlur(radius=spec.blur / 2))
        r, g, b, a = spec.color
        return tint(shifted, (r, g, b, int(round(a * opacity))))
