from __future__ import annotations

import logging
import struct
import threading
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from ..utils.image_ops import flatten_alpha
from .effects import CANVAS_SIZE, FRAME_DELAY_MS, TOTAL_FRAMES, compute_frame_transform
from .errors import EncodeCancelled, EncodeError
from .renderer import SceneRenderer
from .state import StyleState

log = logging.getLogger(__name__)

DISPOSE_BACKGROUND = 2

MAX_CODE = 4096


def quantize_frame(rgb: np.ndarray, colors: int = 256) -> Tuple[np.ndarray, np.ndarray]:
    """Median-cut an opaque RGB frame down to a palette of at most ``colors`` entries.

    Returns ``(palette, indices)``: a (k, 3) uint8 palette and an (h, w)
    uint8 index map.
    """
    img = Image.fromarray(np.ascontiguousarray(rgb, dtype=np.uint8))
    q = img.quantize(colors=colors, method=Image.Quantize.MEDIANCUT, dither=Image.Dither.NONE)
    indices = np.array(q, dtype=np.uint8)
    used = int(indices.max()) + 1
    palette = np.array(q.getpalette()[: used * 3], dtype=np.uint8).reshape(-1, 3)
    return palette, indices


class _BitPacker:
    # GIF packs variable-width codes least significant bit first
    def __init__(self):
        self.out = bytearray()
        self._acc = 0
        self._bits = 0

    def write(self, code: int, size: int) -> None:
        self._acc |= code << self._bits
        self._bits += size
        while self._bits >= 8:
            self.out.append(self._acc & 0xFF)
            self._acc >>= 8
            self._bits -= 8

    def flush(self) -> bytes:
        if self._bits > 0:
            self.out.append(self._acc & 0xFF)
            self._acc = 0
            self._bits = 0
        return bytes(self.out)


def lzw_encode(indices: Sequence[int], min_code_size: int) -> bytes:
    """GIF-flavoured LZW over palette indices; returns the packed code stream."""
    clear = 1 << min_code_size
    eoi = clear + 1
    code_size = min_code_size + 1
    next_code = eoi + 1
    table = {}
    out = _BitPacker()

    out.write(clear, code_size)
    if len(indices) == 0:
        out.write(eoi, code_size)
        return out.flush()

    prefix = indices[0]
    for k in indices[1:]:
        key = (prefix << 8) | k
        code = table.get(key)
        if code is not None:
            prefix = code
            continue
        out.write(prefix, code_size)
        if next_code == MAX_CODE:
            out.write(clear, code_size)
            table.clear()
            code_size = min_code_size + 1
            next_code = eoi + 1
        else:
            if next_code >= (1 << code_size):
                code_size += 1
            table[key] = next_code
            next_code += 1
        prefix = k

    out.write(prefix, code_size)
    out.write(eoi, code_size)
    return out.flush()


class GifWriter:
    """Minimal GIF89a container: one local color table per frame, no global table."""

    def __init__(self, width: int, height: int, loop: Optional[int] = 0):
        self.width = int(width)
        self.height = int(height)
        self.loop = loop
        self.frame_count = 0
        self._buf = bytearray(b"GIF89a")
        self._buf += struct.pack("<HHBBB", self.width, self.height, 0, 0, 0)
        self._finished = False

    def _write_loop(self) -> None:
        self._buf += b"\x21\xff\x0bNETSCAPE2.0\x03\x01"
        self._buf += struct.pack("<H", self.loop)
        self._buf += b"\x00"

    def add_frame(
        self,
        indices: np.ndarray,
        palette: np.ndarray,
        delay_ms: int = FRAME_DELAY_MS,
        disposal: int = DISPOSE_BACKGROUND,
    ) -> None:
        if self._finished:
            raise ValueError("GIF stream already finished")
        indices = np.asarray(indices, dtype=np.uint8)
        if indices.shape != (self.height, self.width):
            raise ValueError(f"frame is {indices.shape}, expected {(self.height, self.width)}")
        palette = np.asarray(palette, dtype=np.uint8).reshape(-1, 3)
        if not 1 <= len(palette) <= 256:
            raise ValueError(f"palette must have 1..256 entries, got {len(palette)}")
        if int(indices.max()) >= len(palette):
            raise ValueError("frame references colors outside its palette")

        table_size = max(2, 1 << (len(palette) - 1).bit_length())
        bits = table_size.bit_length() - 1
        padded = np.zeros((table_size, 3), dtype=np.uint8)
        padded[: len(palette)] = palette

        if self.frame_count == 0 and self.loop is not None:
            self._write_loop()

        delay_cs = int(round(delay_ms / 10.0))
        self._buf += struct.pack("<BBBBHBB", 0x21, 0xF9, 4, (disposal & 0x07) << 2, delay_cs, 0, 0)
        self._buf += struct.pack("<BHHHHB", 0x2C, 0, 0, self.width, self.height, 0x80 | (bits - 1))
        self._buf += padded.tobytes()

        min_code_size = max(2, bits)
        data = lzw_encode(indices.ravel().tolist(), min_code_size)
        self._buf.append(min_code_size)
        for i in range(0, len(data), 255):
            chunk = data[i : i + 255]
            self._buf.append(len(chunk))
            self._buf += chunk
        self._buf.append(0)
        self.frame_count += 1

    def finish(self) -> bytes:
        if not self._finished:
            self._buf.append(0x3B)
            self._finished = True
        return bytes(self._buf)


class EncoderState(Enum):
    IDLE = "idle"
    ENCODING = "encoding"
    FINALIZED = "finalized"
    FAILED = "failed"


class SequenceEncoder:
    """Renders the fixed frame timeline and serializes it to an animated GIF."""

    def __init__(
        self,
        renderer: Optional[SceneRenderer] = None,
        total_frames: int = TOTAL_FRAMES,
        frame_delay_ms: int = FRAME_DELAY_MS,
        progress: Optional[Callable[[int], None]] = None,
    ):
        self.renderer = renderer or SceneRenderer()
        self.total_frames = int(total_frames)
        self.frame_delay_ms = int(frame_delay_ms)
        self.progress = progress
        self.state = EncoderState.IDLE
        self._cancel = threading.Event()

    def cancel(self) -> None:
        self._cancel.set()

    def encode(self, state: StyleState, background: Optional[Image.Image] = None) -> bytes:
        if self.state == EncoderState.ENCODING:
            raise EncodeError("encoder is already running")
        self.state = EncoderState.ENCODING
        self._cancel.clear()
        try:
            data = self._encode(state, background)
        except EncodeError:
            self.state = EncoderState.FAILED
            raise
        except Exception as e:
            self.state = EncoderState.FAILED
            raise EncodeError(f"GIF encoding failed: {e}") from e
        self.state = EncoderState.FINALIZED
        log.info("encoded %d frames, %d bytes", self.total_frames, len(data))
        return data

    def _encode(self, state: StyleState, background: Optional[Image.Image]) -> bytes:
        writer = GifWriter(CANVAS_SIZE, CANVAS_SIZE, loop=0)
        surface = self.renderer.new_surface()
        text_length = state.visible_text_length
        for i in range(self.total_frames):
            if self._cancel.is_set():
                raise EncodeCancelled(f"export cancelled at frame {i}/{self.total_frames}")
            transform = compute_frame_transform(state.animation, i, self.total_frames, text_length)
            self.renderer.render(surface, state, transform, background)
            palette, indices = quantize_frame(flatten_alpha(surface.pixels()))
            writer.add_frame(indices, palette, self.frame_delay_ms, DISPOSE_BACKGROUND)
            if self.progress is not None:
                self.progress(int((i + 1) * 100 / self.total_frames))
        return writer.finish()
