from __future__ import annotations


class EmojinatorError(Exception):
    pass


class SurfaceError(EmojinatorError):
    """Raster surface could not be acquired or is unusable for rendering."""


class EncodeError(EmojinatorError):
    """Animated export failed; no bytes were produced."""


class EncodeCancelled(EncodeError):
    pass
