from __future__ import annotations

import re

MAX_FILENAME_LENGTH = 50
DEFAULT_FILENAME = "emoji"

_FORBIDDEN = re.compile(r'[<>:"/\\|?*]')


def generate_filename(text: str) -> str:
    """Derive a download basename (no extension) from the sticker text."""
    if not text.strip():
        return DEFAULT_FILENAME
    lines = [line.strip() for line in text.split("\n")]
    name = "-".join(line for line in lines if line)
    name = _FORBIDDEN.sub("", name)
    if len(name) > MAX_FILENAME_LENGTH:
        name = name[: MAX_FILENAME_LENGTH - 1] + "…"
    return name or DEFAULT_FILENAME
