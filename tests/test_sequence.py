import io
import struct
from dataclasses import replace

import numpy as np
import pytest
from PIL import Image

from emojinator.core.errors import EncodeCancelled, EncodeError
from emojinator.core.renderer import RasterSurface
from emojinator.core.sequence import (
    EncoderState,
    GifWriter,
    SequenceEncoder,
    lzw_encode,
    quantize_frame,
)
from emojinator.core.state import selection_of


def _skip_sub_blocks(data, pos):
    while data[pos] != 0:
        pos += data[pos] + 1
    return pos + 1


def walk_gif(data):
    """Walk the block structure; LZW payloads can contain any byte so counting markers is not enough."""
    assert data[:6] == b"GIF89a"
    width, height, packed, _, _ = struct.unpack("<HHBBB", data[6:13])
    pos = 13
    if packed & 0x80:
        pos += 3 * (2 << (packed & 7))
    info = {"size": (width, height), "gce": [], "images": 0, "loops": 0}
    while True:
        block = data[pos]
        if block == 0x3B:
            break
        if block == 0x21:
            label = data[pos + 1]
            pos += 2
            if label == 0xF9:
                flags, delay, _ = struct.unpack("<BHB", data[pos + 1 : pos + 5])
                info["gce"].append(((flags >> 2) & 7, delay))
            elif label == 0xFF and data[pos + 1 : pos + 12] == b"NETSCAPE2.0":
                info["loops"] += 1
            pos = _skip_sub_blocks(data, pos)
        elif block == 0x2C:
            packed = data[pos + 9]
            pos += 10
            if packed & 0x80:
                pos += 3 * (2 << (packed & 7))
            pos = _skip_sub_blocks(data, pos + 1)
            info["images"] += 1
        else:
            raise AssertionError(f"unexpected block 0x{block:02x} at {pos}")
    assert pos == len(data) - 1
    return info


class TestQuantize:
    def test_solid_frame(self):
        rgb = np.full((128, 128, 3), 255, dtype=np.uint8)
        palette, indices = quantize_frame(rgb)
        assert 1 <= len(palette) <= 256
        assert (palette[indices] == rgb).all()

    def test_many_colors_capped(self):
        rng = np.random.default_rng(1)
        rgb = rng.integers(0, 256, (128, 128, 3), dtype=np.uint8)
        palette, indices = quantize_frame(rgb)
        assert len(palette) <= 256
        assert indices.shape == (128, 128)
        assert int(indices.max()) < len(palette)


class TestGifWriter:
    def decode_first(self, data):
        with Image.open(io.BytesIO(data)) as im:
            return np.array(im.convert("RGB"))

    def test_random_indices_survive_lzw(self):
        # random noise overflows the 4096-entry code table several times
        rng = np.random.default_rng(0)
        indices = rng.integers(0, 200, (128, 128)).astype(np.uint8)
        palette = np.array([(i, 255 - i, (i * 7) % 256) for i in range(200)], dtype=np.uint8)
        w = GifWriter(128, 128)
        w.add_frame(indices, palette)
        assert (self.decode_first(w.finish()) == palette[indices]).all()

    def test_single_color_palette(self):
        w = GifWriter(128, 128)
        w.add_frame(np.zeros((128, 128), dtype=np.uint8), np.array([[10, 20, 30]], dtype=np.uint8))
        out = self.decode_first(w.finish())
        assert (out == np.array([10, 20, 30])).all()

    def test_frame_layout(self):
        w = GifWriter(128, 128)
        for color in ([0, 0, 0], [255, 255, 255], [0, 0, 0]):
            w.add_frame(np.zeros((128, 128), dtype=np.uint8), np.array([color], dtype=np.uint8), 100)
        info = walk_gif(w.finish())
        assert info["size"] == (128, 128)
        assert info["images"] == 3
        assert info["gce"] == [(2, 10)] * 3
        assert info["loops"] == 1

    def test_rejects_bad_frames(self):
        w = GifWriter(128, 128)
        with pytest.raises(ValueError):
            w.add_frame(np.zeros((64, 64), dtype=np.uint8), np.zeros((2, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            w.add_frame(np.full((128, 128), 5, dtype=np.uint8), np.zeros((2, 3), dtype=np.uint8))

    def test_empty_lzw_stream(self):
        # clear (4) then end-of-information (5) at 3 bits each
        assert lzw_encode([], 2) == bytes([0b101100])


class TestSequenceEncoder:
    def test_animated_stream(self, renderer, state):
        progress = []
        enc = SequenceEncoder(renderer, progress=progress.append)
        data = enc.encode(replace(state, animation=selection_of("blink", "rotate")))
        info = walk_gif(data)
        assert info["images"] == 20
        assert len(info["gce"]) == 20
        assert all(g == (2, 10) for g in info["gce"])
        assert info["loops"] == 1
        assert enc.state is EncoderState.FINALIZED
        assert progress[-1] == 100
        assert len(progress) == 20

    def test_identical_frames_are_kept(self, renderer, state):
        data = SequenceEncoder(renderer).encode(state)
        with Image.open(io.BytesIO(data)) as im:
            assert im.n_frames == 20

    def test_transparent_pixels_flatten_to_white(self, renderer, state):
        data = SequenceEncoder(renderer).encode(replace(state, text="", animation=selection_of("blink")))
        with Image.open(io.BytesIO(data)) as im:
            assert im.convert("RGB").getpixel((0, 0)) == (255, 255, 255)

    def test_render_failure_raises_encode_error(self, state):
        class Broken:
            def new_surface(self):
                return RasterSurface()

            def render(self, *a, **kw):
                raise RuntimeError("boom")

        enc = SequenceEncoder(Broken())
        with pytest.raises(EncodeError, match="boom"):
            enc.encode(state)
        assert enc.state is EncoderState.FAILED

    def test_cancel_between_frames(self, renderer, state):
        enc = SequenceEncoder(renderer)
        enc.progress = lambda pct: enc.cancel()
        with pytest.raises(EncodeCancelled):
            enc.encode(replace(state, animation=selection_of("pulse")))
        assert enc.state is EncoderState.FAILED

    def test_encoder_is_reusable(self, renderer, state):
        enc = SequenceEncoder(renderer, total_frames=4)
        first = enc.encode(state)
        second = enc.encode(state)
        assert first == second
        assert walk_gif(first)["images"] == 4
