from __future__ import annotations

import glob
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

from PIL import ImageFont

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FontFamily:
    id: str
    name: str
    family: str
    no_bold: bool = False


FONTS: Dict[str, FontFamily] = {
    f.id: f
    for f in (
        FontFamily("noto-sans-jp", "Noto Sans JP", "Noto Sans JP"),
        FontFamily("m-plus-rounded", "M PLUS Rounded 1c", "M PLUS Rounded 1c"),
        FontFamily("dela-gothic-one", "Dela Gothic One", "Dela Gothic One", no_bold=True),
        FontFamily("noto-serif-jp", "Noto Serif JP", "Noto Serif JP"),
        FontFamily("kiwi-maru", "Kiwi Maru", "Kiwi Maru"),
        FontFamily("yusei-magic", "Yusei Magic", "Yusei Magic", no_bold=True),
        FontFamily("hachi-maru-pop", "Hachi Maru Pop", "Hachi Maru Pop", no_bold=True),
        FontFamily("reggae-one", "Reggae One", "Reggae One", no_bold=True),
        FontFamily("mochiy-pop-one", "Mochiy Pop One", "Mochiy Pop One", no_bold=True),
        FontFamily("dot-gothic-16", "DotGothic16", "DotGothic16", no_bold=True),
    )
}

DEFAULT_FONT_DIRS = (
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "fonts"),
    os.path.join(os.getcwd(), "fonts"),
    "/usr/share/fonts",
    "/usr/local/share/fonts",
    os.path.expanduser("~/.fonts"),
    "C:/Windows/Fonts",
)


@dataclass
class ResolvedFont:
    font: ImageFont.FreeTypeFont | ImageFont.ImageFont
    # bold/italic were requested but no matching face exists; the renderer fakes them
    synthetic_bold: bool = False
    synthetic_italic: bool = False


def _key(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


class FontResolver:
    """Maps catalog font ids onto font files found in the configured directories."""

    def __init__(self, font_dirs: Optional[Iterable[str]] = None):
        self.font_dirs = list(font_dirs) if font_dirs else list(DEFAULT_FONT_DIRS)
        if getattr(sys, "frozen", False):
            self.font_dirs.insert(0, os.path.join(sys._MEIPASS, "fonts"))
        self._files: Optional[Dict[str, str]] = None
        self._cache: Dict[tuple, ResolvedFont] = {}

    @property
    def files(self) -> Dict[str, str]:
        if self._files is None:
            self._files = self._enumerate()
        return self._files

    def _enumerate(self) -> Dict[str, str]:
        fm: Dict[str, str] = {}
        for font_dir in self.font_dirs:
            if not os.path.isdir(font_dir):
                continue
            for ext in ("ttf", "ttc", "otf"):
                for p in glob.glob(os.path.join(font_dir, "**", f"*.{ext}"), recursive=True):
                    fm.setdefault(_key(os.path.splitext(os.path.basename(p))[0]), p)
        log.debug("found %d font files in %s", len(fm), self.font_dirs)
        return fm

    def _find(self, family: str, variants: Sequence[str]) -> Optional[str]:
        base = _key(family)
        for variant in variants:
            path = self.files.get(base + variant)
            if path:
                return path
        return None

    def resolve(self, font_id: str, size: int, bold: bool = False, italic: bool = False) -> ResolvedFont:
        size = max(1, int(round(size)))
        key = (font_id, size, bold, italic)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        fam = FONTS.get(font_id)
        family = fam.family if fam else font_id
        want_bold = bold and not (fam and fam.no_bold)

        if want_bold and italic:
            order = [("bolditalic", False, False), ("bold", False, True), ("italic", True, False)]
        elif want_bold:
            order = [("bold", False, False)]
        elif italic:
            order = [("italic", False, False)]
        else:
            order = []
        order += [("regular", want_bold, italic), ("", want_bold, italic)]

        resolved = None
        for variant, fake_bold, fake_italic in order:
            path = self._find(family, [variant])
            if not path:
                continue
            try:
                resolved = ResolvedFont(ImageFont.truetype(path, size), fake_bold, fake_italic)
                break
            except OSError as e:
                log.warning("could not load font %s: %s", path, e)
        if resolved is None:
            resolved = ResolvedFont(ImageFont.load_default(size=size), want_bold, italic)

        self._cache[key] = resolved
        return resolved
