from __future__ import annotations

import base64
import hashlib
import io
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Union

from PIL import Image

log = logging.getLogger(__name__)

Source = Union[str, bytes]


def _raw_bytes(source: Source) -> bytes:
    if isinstance(source, bytes):
        return source
    payload = source.split(",", 1)[1] if source.startswith("data:") else source
    return base64.b64decode(payload, validate=False)


def decode_image(source: Source) -> Image.Image:
    """Decode PNG/JPEG bytes, a base64 string or a data URL into an RGBA image."""
    img = Image.open(io.BytesIO(_raw_bytes(source)))
    img.load()
    return img.convert("RGBA")


class ImageCache:
    """Bounded LRU of decoded background images keyed by content hash.

    All access goes through one lock so the cache can be shared between the
    UI thread and the decode worker.
    """

    def __init__(self, max_entries: int = 16, executor: Optional[ThreadPoolExecutor] = None):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = int(max_entries)
        self._entries: "OrderedDict[str, Image.Image]" = OrderedDict()
        self._lock = threading.Lock()
        self._executor = executor

    @staticmethod
    def key_for(source: Source) -> str:
        data = source if isinstance(source, bytes) else source.encode("utf-8")
        return hashlib.sha1(data).hexdigest()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, source: Source) -> bool:
        with self._lock:
            return self.key_for(source) in self._entries

    def peek(self, source: Optional[Source]) -> Optional[Image.Image]:
        """Cached image for ``source`` or None; never decodes."""
        if not source:
            return None
        key = self.key_for(source)
        with self._lock:
            img = self._entries.get(key)
            if img is not None:
                self._entries.move_to_end(key)
            return img

    def put(self, source: Source, img: Image.Image) -> None:
        key = self.key_for(source)
        with self._lock:
            self._entries[key] = img
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug("evicted background image %s", evicted[:10])

    def evict(self, source: Source) -> bool:
        with self._lock:
            return self._entries.pop(self.key_for(source), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get(self, source: Optional[Source]) -> Optional[Image.Image]:
        """Cached or freshly decoded image; None when ``source`` cannot be decoded."""
        if not source:
            return None
        img = self.peek(source)
        if img is not None:
            return img
        try:
            img = decode_image(source)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            log.warning("background image could not be decoded, rendering without it: %s", e)
            return None
        self.put(source, img)
        return img

    def request(self, source: Source, callback: Callable[[Optional[Image.Image]], None]) -> Future:
        """Decode ``source`` on the worker pool and hand the result to ``callback``."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="emojinator-decode")

        def work():
            img = self.get(source)
            callback(img)
            return img

        return self._executor.submit(work)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
