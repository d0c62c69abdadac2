"""Shared fixtures.

Fonts resolve against an empty directory so every test renders with Pillow's
bundled scalable font and results do not depend on what the host has installed.
"""

import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from emojinator.core.renderer import RasterSurface, SceneRenderer
from emojinator.core.state import FontSpec, StyleState
from emojinator.utils.fonts import FontResolver


@pytest.fixture(scope="session")
def fonts(tmp_path_factory):
    return FontResolver([str(tmp_path_factory.mktemp("fonts"))])


@pytest.fixture(scope="session")
def renderer(fonts):
    return SceneRenderer(fonts)


@pytest.fixture
def surface():
    return RasterSurface()


@pytest.fixture
def state():
    """Plain ASCII sticker; the bundled font has no CJK glyphs."""
    return StyleState(text="HI", font=FontSpec(size=48, bold=False))
