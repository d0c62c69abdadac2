from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Tuple

from .effects import EffectId

TRANSPARENT = "transparent"


class LayoutMode(str, Enum):
    NORMAL = "normal"
    STRETCH_FILL = "stretch-fill"
    FIT_FILL = "fit-fill"


class ShadowPreset(str, Enum):
    NONE = "none"
    SOFT = "soft"
    HARD = "hard"
    LONG = "long"


@dataclass(frozen=True)
class ShadowSpec:
    enabled: bool
    blur: float
    offset_x: int
    offset_y: int
    color: Tuple[int, int, int, int]


SHADOW_PRESETS: Dict[ShadowPreset, ShadowSpec] = {
    ShadowPreset.NONE: ShadowSpec(False, 0, 0, 0, (0, 0, 0, 128)),
    ShadowPreset.SOFT: ShadowSpec(True, 4, 2, 2, (0, 0, 0, 77)),
    ShadowPreset.HARD: ShadowSpec(True, 0, 3, 3, (0, 0, 0, 204)),
    ShadowPreset.LONG: ShadowSpec(True, 0, 4, 4, (0, 0, 0, 153)),
}


@dataclass(frozen=True)
class FontSpec:
    id: str = "noto-sans-jp"
    size: int = 32
    bold: bool = True
    italic: bool = False


@dataclass(frozen=True)
class TextOffset:
    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class Stroke:
    enabled: bool = False
    color: str = "#ffffff"
    width: int = 2


@dataclass(frozen=True)
class BackgroundImage:
    data: str | bytes | None = None
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0
    opacity: float = 1.0


@dataclass(frozen=True)
class AnimationSelection:
    """Ordered set of effects plus a speed multiplier per effect."""

    effects: Tuple[EffectId, ...] = ()
    speeds: Mapping[EffectId, float] = field(default_factory=dict)

    def __post_init__(self):
        ordered = []
        for effect in self.effects:
            effect = EffectId(effect)
            if effect not in ordered:
                ordered.append(effect)
        speeds = {EffectId(k): float(v) for k, v in dict(self.speeds).items()}
        for effect, speed in speeds.items():
            if speed <= 0:
                raise ValueError(f"speed for {effect.value} must be positive, got {speed}")
        object.__setattr__(self, "effects", tuple(ordered))
        object.__setattr__(self, "speeds", speeds)

    @property
    def enabled(self) -> bool:
        return bool(self.effects)

    def speed_of(self, effect: EffectId) -> float:
        return self.speeds.get(EffectId(effect), 1.0)

    def toggle(self, effect: EffectId) -> "AnimationSelection":
        effect = EffectId(effect)
        if effect in self.effects:
            return replace(self, effects=tuple(e for e in self.effects if e != effect))
        return replace(self, effects=self.effects + (effect,))

    def with_speed(self, effect: EffectId, speed: float) -> "AnimationSelection":
        speeds = dict(self.speeds)
        speeds[EffectId(effect)] = speed
        return replace(self, speeds=speeds)

    def cleared(self) -> "AnimationSelection":
        return AnimationSelection()


def selection_of(*effects: EffectId | str, **speeds: float) -> AnimationSelection:
    """Build a selection from effect names; speed keys may use ``_`` for ``-``."""
    return AnimationSelection(
        effects=tuple(EffectId(e) for e in effects),
        speeds={EffectId(k.replace("_", "-")): v for k, v in speeds.items()},
    )


@dataclass(frozen=True)
class StyleState:
    text: str = "りち\nもじ"
    font: FontSpec = FontSpec()
    text_color: str = "#000000"
    text_opacity: float = 1.0
    text_offset: TextOffset = TextOffset()
    layout_mode: LayoutMode = LayoutMode.NORMAL
    background_color: str = TRANSPARENT
    background_image: BackgroundImage = BackgroundImage()
    stroke: Stroke = Stroke()
    shadow: ShadowPreset = ShadowPreset.NONE
    animation: AnimationSelection = AnimationSelection()

    def __post_init__(self):
        object.__setattr__(self, "layout_mode", LayoutMode(self.layout_mode))
        object.__setattr__(self, "shadow", ShadowPreset(self.shadow))

    @property
    def visible_text_length(self) -> int:
        return len(self.text.replace("\n", ""))

    @property
    def shadow_spec(self) -> ShadowSpec:
        return SHADOW_PRESETS[self.shadow]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "StyleState":
        data = dict(data or {})
        known = {"text", "font", "text_color", "text_opacity", "text_offset", "layout_mode",
                 "background_color", "background_image", "stroke", "shadow", "animation"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown state fields: {sorted(unknown)}")

        kwargs: Dict[str, Any] = {}
        for key in ("text", "text_color", "background_color"):
            if key in data:
                kwargs[key] = str(data[key])
        if "text_opacity" in data:
            kwargs["text_opacity"] = float(data["text_opacity"])
        if "layout_mode" in data:
            kwargs["layout_mode"] = LayoutMode(data["layout_mode"])
        if "shadow" in data:
            kwargs["shadow"] = ShadowPreset(data["shadow"])
        if "font" in data:
            kwargs["font"] = FontSpec(**data["font"])
        if "text_offset" in data:
            kwargs["text_offset"] = TextOffset(**data["text_offset"])
        if "stroke" in data:
            kwargs["stroke"] = Stroke(**data["stroke"])
        if "background_image" in data:
            kwargs["background_image"] = BackgroundImage(**data["background_image"])
        if "animation" in data:
            anim = data["animation"] or {}
            speeds = {str(k): v for k, v in (anim.get("speeds") or {}).items()}
            kwargs["animation"] = selection_of(*anim.get("effects", ()), **speeds)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["layout_mode"] = self.layout_mode.value
        out["shadow"] = self.shadow.value
        out["animation"] = {
            "effects": [e.value for e in self.animation.effects],
            "speeds": {e.value: s for e, s in self.animation.speeds.items()},
        }
        return out
