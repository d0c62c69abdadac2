from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from PIL import Image

from ..utils.image_cache import ImageCache
from .effects import FRAME_DELAY_MS, IDENTITY_TRANSFORM, TOTAL_FRAMES, FrameTransform, compute_frame_transform
from .renderer import RasterSurface, SceneRenderer
from .state import StyleState

log = logging.getLogger(__name__)

FrameCallback = Callable[[RasterSurface, int], None]


class AnimationClock:
    """Real-time preview driver.

    ``scheduler`` is anything with ``call_later(delay_seconds, callback)``
    returning a handle that has ``cancel()``: an asyncio event loop, or the
    QTimer adapter in :mod:`emojinator.preview`. Every tick maps wall-clock
    time onto the fixed export timeline, so the preview shows the same frame
    the exported GIF would show at that moment.
    """

    def __init__(
        self,
        renderer: SceneRenderer,
        scheduler: Any,
        on_frame: Optional[FrameCallback] = None,
        images: Optional[ImageCache] = None,
        clock: Callable[[], float] = time.monotonic,
        total_frames: int = TOTAL_FRAMES,
        frame_delay_ms: int = FRAME_DELAY_MS,
        interval: Optional[float] = None,
    ):
        self.renderer = renderer
        self.scheduler = scheduler
        self.on_frame = on_frame
        self.images = images
        self.clock = clock
        self.total_frames = int(total_frames)
        self.frame_delay_ms = int(frame_delay_ms)
        self.interval = interval if interval is not None else self.frame_delay_ms / 1000.0
        self.surface = renderer.new_surface()

        self._state: Optional[StyleState] = None
        self._background: Optional[Image.Image] = None
        self._started_at = 0.0
        self._generation = 0
        self._handle = None
        self._cancelled = True

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._cancelled

    @property
    def cycle_seconds(self) -> float:
        return self.total_frames * self.frame_delay_ms / 1000.0

    def frame_index_at(self, elapsed: float) -> int:
        progress = (elapsed % self.cycle_seconds) / self.cycle_seconds
        return min(int(progress * self.total_frames), self.total_frames - 1)

    def set_background(self, img: Optional[Image.Image]) -> None:
        """Explicit background bitmap; takes precedence over the image cache."""
        self._background = img

    def start(self, state: StyleState) -> None:
        self.cancel()
        self._state = state
        self._cancelled = False
        self._started_at = self.clock()
        generation = self._generation

        if not state.animation.enabled:
            # static preview: one frame, nothing scheduled
            self._draw(IDENTITY_TRANSFORM, 0)
            return
        self._tick(generation)

    def restart(self, state: Optional[StyleState] = None) -> None:
        """Reset the phase, optionally switching to a new state snapshot."""
        state = state if state is not None else self._state
        if state is None:
            raise RuntimeError("clock was never started")
        self.start(state)

    def cancel(self) -> None:
        self._cancelled = True
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self, generation: int) -> None:
        if self._cancelled or generation != self._generation:
            return
        self._handle = None
        state = self._state
        frame_index = self.frame_index_at(self.clock() - self._started_at)
        transform = compute_frame_transform(
            state.animation, frame_index, self.total_frames, state.visible_text_length
        )
        self._draw(transform, frame_index)
        # on_frame may have cancelled or restarted us
        if self._cancelled or generation != self._generation:
            return
        self._handle = self.scheduler.call_later(self.interval, lambda: self._tick(generation))

    def _current_background(self) -> Optional[Image.Image]:
        if self._background is not None:
            return self._background
        if self.images is not None:
            return self.images.peek(self._state.background_image.data)
        return None

    def _draw(self, transform: FrameTransform, frame_index: int) -> None:
        try:
            self.renderer.render(self.surface, self._state, transform, self._current_background())
        except Exception:
            log.exception("preview frame %d failed, skipping", frame_index)
            return
        if self.on_frame is None:
            return
        try:
            self.on_frame(self.surface, frame_index)
        except Exception:
            log.exception("displaying preview frame %d failed, skipping", frame_index)
