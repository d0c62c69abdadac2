from __future__ import annotations

import io
import logging
import zipfile
from dataclasses import dataclass
from typing import Callable, Optional

import imageio.v3 as iio
import numpy as np
from PIL import Image

from .core.effects import IDENTITY_TRANSFORM
from .core.renderer import SceneRenderer
from .core.sequence import SequenceEncoder
from .core.state import StyleState
from .utils.filenames import generate_filename
from .utils.image_ops import flatten_alpha, slice_tiles, upscale_nearest

log = logging.getLogger(__name__)

TILE_GRIDS = (1, 2, 3)


@dataclass(frozen=True)
class ExportResult:
    filename: str
    extension: str
    mime_type: str
    data: bytes

    @property
    def full_name(self) -> str:
        return f"{self.filename}.{self.extension}"


def encode_png(img: Image.Image) -> bytes:
    return iio.imwrite("<bytes>", np.asarray(img), extension=".png")


def render_still(
    state: StyleState,
    renderer: Optional[SceneRenderer] = None,
    background: Optional[Image.Image] = None,
) -> Image.Image:
    """Render the unanimated sticker and return a copy of the RGBA frame."""
    renderer = renderer or SceneRenderer()
    return renderer.render_new(state, IDENTITY_TRANSFORM, background).image.copy()


def export_png(
    state: StyleState,
    renderer: Optional[SceneRenderer] = None,
    background: Optional[Image.Image] = None,
) -> bytes:
    return encode_png(render_still(state, renderer, background))


def export_gif(
    state: StyleState,
    renderer: Optional[SceneRenderer] = None,
    background: Optional[Image.Image] = None,
    progress: Optional[Callable[[int], None]] = None,
) -> bytes:
    return SequenceEncoder(renderer, progress=progress).encode(state, background)


def export_sticker(
    state: StyleState,
    renderer: Optional[SceneRenderer] = None,
    background: Optional[Image.Image] = None,
    progress: Optional[Callable[[int], None]] = None,
) -> ExportResult:
    """Animated GIF when any effect is selected, transparent PNG otherwise."""
    name = generate_filename(state.text)
    if state.animation.enabled:
        data = export_gif(state, renderer, background, progress)
        result = ExportResult(name, "gif", "image/gif", data)
    else:
        result = ExportResult(name, "png", "image/png", export_png(state, renderer, background))
    log.info("exported %s (%d bytes)", result.full_name, len(result.data))
    return result


def export_tiles(
    state: StyleState,
    grid: int,
    renderer: Optional[SceneRenderer] = None,
    background: Optional[Image.Image] = None,
) -> ExportResult:
    """Upscale the still sticker by ``grid`` and slice it into grid x grid opaque tiles, zipped."""
    if grid not in TILE_GRIDS:
        raise ValueError(f"grid must be one of {TILE_GRIDS}, got {grid}")
    name = generate_filename(state.text)
    big = upscale_nearest(render_still(state, renderer, background), grid)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for r, row in enumerate(slice_tiles(big, grid), start=1):
            for c, tile in enumerate(row, start=1):
                opaque = Image.fromarray(flatten_alpha(np.asarray(tile)))
                zf.writestr(f"{name}_{r}_{c}.png", encode_png(opaque))
    log.info("exported %dx%d tiles for %s", grid, grid, name)
    return ExportResult(f"{name}_{grid}x{grid}", "zip", "application/zip", buf.getvalue())
