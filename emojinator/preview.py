from __future__ import annotations

import logging
import sys
from typing import Callable, Optional

from PySide6.QtCore import QObject, Qt, QTimer, Signal
from PySide6.QtGui import QImage, QPixmap
from PySide6.QtWidgets import QApplication, QLabel, QVBoxLayout, QWidget

from .config import Settings
from .core.clock import AnimationClock
from .core.renderer import RasterSurface, SceneRenderer
from .core.state import StyleState
from .utils.fonts import FontResolver
from .utils.image_cache import ImageCache

log = logging.getLogger(__name__)

PREVIEW_ZOOM = 3


class _TimerHandle:
    def __init__(self, timer: QTimer):
        self._timer = timer

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.stop()
            self._timer.deleteLater()
            self._timer = None


class QtScheduler:
    """``call_later`` on top of single-shot QTimers owned by ``parent``."""

    def __init__(self, parent: Optional[QObject] = None):
        self.parent = parent

    def call_later(self, delay: float, callback: Callable[[], None]) -> _TimerHandle:
        timer = QTimer(self.parent)
        timer.setSingleShot(True)
        timer.timeout.connect(callback)
        timer.start(max(0, int(round(delay * 1000))))
        return _TimerHandle(timer)


def surface_to_qimage(surface: RasterSurface) -> QImage:
    px = surface.pixels()
    h, w, _ = px.shape
    # copy() detaches from the numpy buffer, which is freed after this call
    return QImage(px.tobytes(), w, h, w * 4, QImage.Format_RGBA8888).copy()


class PreviewWindow(QWidget):
    background_ready = Signal()

    def __init__(self, state: StyleState, renderer: SceneRenderer, images: ImageCache):
        super().__init__()
        self.setWindowTitle("emojinator - Preview")
        self.setStyleSheet("background:#2b2b2b;")
        self.label = QLabel(alignment=Qt.AlignCenter)
        lay = QVBoxLayout(self)
        lay.setContentsMargins(12, 12, 12, 12)
        lay.addWidget(self.label)

        self.state = state
        self.images = images
        self.clock = AnimationClock(renderer, QtScheduler(self), self.set_frame, images=images)
        self.background_ready.connect(lambda: self.clock.restart())

        if state.background_image.data:
            images.request(state.background_image.data, lambda img: self.background_ready.emit())

    def set_frame(self, surface: RasterSurface, frame_index: int) -> None:
        pm = QPixmap.fromImage(surface_to_qimage(surface))
        size = pm.width() * PREVIEW_ZOOM
        self.label.setPixmap(pm.scaled(size, size, Qt.KeepAspectRatio, Qt.FastTransformation))

    def showEvent(self, e):
        super().showEvent(e)
        self.clock.start(self.state)

    def closeEvent(self, e):
        self.clock.cancel()
        self.images.shutdown()
        super().closeEvent(e)


def run_preview(state: StyleState, settings: Optional[Settings] = None) -> int:
    settings = settings or Settings()
    app = QApplication.instance() or QApplication(sys.argv)
    renderer = SceneRenderer(FontResolver(settings.font_dirs or None))
    w = PreviewWindow(state, renderer, ImageCache(settings.image_cache_entries))
    w.show()
    return app.exec()
