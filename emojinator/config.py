from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

log = logging.getLogger(__name__)

CONFIG_ENV = "EMOJINATOR_CONFIG"


@dataclass
class Settings:
    font_dirs: List[str] = field(default_factory=list)
    image_cache_entries: int = 16
    max_upload_bytes: int = 10 * 1024 * 1024
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown settings: {sorted(unknown)}")
        if "font_dirs" in data:
            dirs = data["font_dirs"] or []
            data["font_dirs"] = [os.path.expanduser(str(d)) for d in ([dirs] if isinstance(dirs, str) else dirs)]
        for key in ("image_cache_entries", "max_upload_bytes", "port"):
            if key in data:
                data[key] = int(data[key])
        return cls(**data)


def load_settings(path: Optional[str] = None) -> Settings:
    """Read settings from ``path``, else from ``$EMOJINATOR_CONFIG``, else defaults."""
    explicit = path is not None
    path = path or os.environ.get(CONFIG_ENV)
    if not path:
        return Settings()
    if not os.path.exists(path):
        if explicit:
            raise FileNotFoundError(path)
        log.warning("%s points at %s, which does not exist; using defaults", CONFIG_ENV, path)
        return Settings()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is not None and not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    log.info("loaded settings from %s", path)
    return Settings.from_mapping(data)


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError("unknown log level")
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
