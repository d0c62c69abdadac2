import base64
import io
import logging
import threading

from PIL import Image

from emojinator.utils.image_cache import ImageCache, decode_image


def png_bytes(color=(255, 0, 0, 255), size=(4, 4)):
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


def test_decode_accepts_bytes_base64_and_data_urls():
    raw = png_bytes()
    b64 = base64.b64encode(raw).decode()
    for source in (raw, b64, "data:image/png;base64," + b64):
        img = decode_image(source)
        assert img.mode == "RGBA"
        assert img.size == (4, 4)


def test_get_caches_decoded_images():
    cache = ImageCache(max_entries=4)
    raw = png_bytes()
    first = cache.get(raw)
    assert cache.get(raw) is first
    assert raw in cache
    assert len(cache) == 1


def test_lru_eviction():
    cache = ImageCache(max_entries=2)
    a, b, c = (png_bytes((i, 0, 0, 255)) for i in (1, 2, 3))
    cache.get(a)
    cache.get(b)
    cache.peek(a)  # a is now most recently used
    cache.get(c)
    assert a in cache
    assert b not in cache
    assert c in cache


def test_explicit_eviction_and_clear():
    cache = ImageCache()
    raw = png_bytes()
    cache.get(raw)
    assert cache.evict(raw)
    assert not cache.evict(raw)
    cache.get(raw)
    cache.clear()
    assert len(cache) == 0


def test_undecodable_source_is_skipped(caplog):
    cache = ImageCache()
    with caplog.at_level(logging.WARNING):
        assert cache.get(b"not an image") is None
    assert "could not be decoded" in caplog.text
    assert len(cache) == 0


def test_empty_source():
    cache = ImageCache()
    assert cache.get(None) is None
    assert cache.peek("") is None


def test_request_decodes_off_thread():
    cache = ImageCache()
    done = threading.Event()
    seen = {}

    def callback(img):
        seen["img"] = img
        seen["thread"] = threading.current_thread().name
        done.set()

    future = cache.request(png_bytes(), callback)
    assert future.result(timeout=5) is not None
    assert done.wait(5)
    assert seen["img"].size == (4, 4)
    assert seen["thread"].startswith("emojinator-decode")
    cache.shutdown()
