from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict

if TYPE_CHECKING:
    from .state import AnimationSelection

CANVAS_SIZE = 128
TOTAL_FRAMES = 20
FRAME_DELAY_MS = 100


class EffectId(str, Enum):
    BLINK = "blink"
    PULSE = "pulse"
    BOUNCE = "bounce"
    SHAKE = "shake"
    SCROLL_H = "scroll-h"
    SCROLL_V = "scroll-v"
    RAINBOW = "rainbow"
    ROTATE = "rotate"
    FADE = "fade"
    ZOOM = "zoom"
    TYPING = "typing"
    WAVE = "wave"
    NEON = "neon"
    WOBBLE = "wobble"
    POP = "pop"


@dataclass(frozen=True)
class FrameTransform:
    offset_x: float = 0.0
    offset_y: float = 0.0
    scale: float = 1.0
    rotation: float = 0.0
    opacity: float = 1.0
    hue_shift: float = 0.0
    visible_chars: int | None = None
    glow_intensity: float = 0.0
    char_offsets: tuple[float, ...] | None = None

    @property
    def is_identity(self) -> bool:
        return self == IDENTITY_TRANSFORM


IDENTITY_TRANSFORM = FrameTransform()


def ease_in_out_sine(t: float) -> float:
    return -(math.cos(math.pi * t) - 1) / 2


def ease_out_bounce(t: float) -> float:
    n1 = 7.5625
    d1 = 2.75
    if t < 1 / d1:
        return n1 * t * t
    if t < 2 / d1:
        t -= 1.5 / d1
        return n1 * t * t + 0.75
    if t < 2.5 / d1:
        t -= 2.25 / d1
        return n1 * t * t + 0.9375
    t -= 2.625 / d1
    return n1 * t * t + 0.984375


# Each waveform maps (phase, text_length) to the subset of transform fields it drives.
Partial = Dict[str, object]


def _blink(p: float, n: int) -> Partial:
    return {"opacity": 1.0 if p < 0.5 else 0.0}


def _pulse(p: float, n: int) -> Partial:
    return {"scale": 1 + 0.2 * math.sin(p * math.pi * 2)}


def _bounce(p: float, n: int) -> Partial:
    return {"offset_y": -20 * ease_out_bounce(abs(math.sin(p * math.pi * 2)))}


def _shake(p: float, n: int) -> Partial:
    return {"offset_x": 8 * math.sin(p * math.pi * 8) * (1 - p * 0.5)}


def _ping_pong(p: float) -> float:
    cycle = p * 2
    if cycle < 1:
        return cycle * CANVAS_SIZE
    return (cycle - 2) * CANVAS_SIZE


def _scroll_h(p: float, n: int) -> Partial:
    return {"offset_x": _ping_pong(p)}


def _scroll_v(p: float, n: int) -> Partial:
    return {"offset_y": _ping_pong(p)}


def _rainbow(p: float, n: int) -> Partial:
    return {"hue_shift": p * 360}


def _rotate(p: float, n: int) -> Partial:
    return {"rotation": p * math.pi * 2}


def _fade(p: float, n: int) -> Partial:
    return {"opacity": ease_in_out_sine(abs(math.sin(p * math.pi)))}


def _zoom(p: float, n: int) -> Partial:
    return {"scale": 0.5 + 0.5 * ease_in_out_sine(abs(math.sin(p * math.pi)))}


def _typing(p: float, n: int) -> Partial:
    if p < 0.7:
        return {"visible_chars": min(n, math.floor(p / 0.7 * (n + 1)))}
    return {"visible_chars": n}


def _wave(p: float, n: int) -> Partial:
    if n <= 0:
        return {"char_offsets": ()}
    return {"char_offsets": tuple(math.sin((p + i / n) * math.pi * 2) * 8 for i in range(n))}


def _neon(p: float, n: int) -> Partial:
    return {"glow_intensity": 0.5 + 0.5 * math.sin(p * math.pi * 4)}


def _wobble(p: float, n: int) -> Partial:
    return {
        "rotation": math.sin(p * math.pi * 4) * 0.1,
        "scale": 1 + math.sin(p * math.pi * 6) * 0.05,
    }


def _pop(p: float, n: int) -> Partial:
    if p < 0.3:
        scale = 0.5
    elif p < 0.5:
        scale = 0.5 + (p - 0.3) / 0.2 * 0.7
    elif p < 0.7:
        scale = 1.2 - (p - 0.5) / 0.2 * 0.2
    else:
        scale = 1.0
    return {"scale": scale}


WAVEFORMS: Dict[EffectId, Callable[[float, int], Partial]] = {
    EffectId.BLINK: _blink,
    EffectId.PULSE: _pulse,
    EffectId.BOUNCE: _bounce,
    EffectId.SHAKE: _shake,
    EffectId.SCROLL_H: _scroll_h,
    EffectId.SCROLL_V: _scroll_v,
    EffectId.RAINBOW: _rainbow,
    EffectId.ROTATE: _rotate,
    EffectId.FADE: _fade,
    EffectId.ZOOM: _zoom,
    EffectId.TYPING: _typing,
    EffectId.WAVE: _wave,
    EffectId.NEON: _neon,
    EffectId.WOBBLE: _wobble,
    EffectId.POP: _pop,
}

_missing = set(EffectId) - set(WAVEFORMS)
if _missing:
    raise RuntimeError(f"effects without a waveform: {sorted(e.value for e in _missing)}")

_ADDITIVE = ("offset_x", "offset_y", "rotation")
_MULTIPLICATIVE = ("scale", "opacity")


def effect_phase(frame_index: int, total_frames: int, speed: float = 1.0) -> float:
    return (frame_index / total_frames * speed) % 1.0


def evaluate_effect(effect: EffectId, phase: float, text_length: int = 0) -> Partial:
    return WAVEFORMS[EffectId(effect)](phase, text_length)


def compute_frame_transform(
    selection: AnimationSelection, frame_index: int, total_frames: int, text_length: int
) -> FrameTransform:
    """Fold every selected effect into one transform for ``frame_index``.

    Offsets and rotation add up, scale and opacity multiply, and the
    remaining fields keep the value written by the last effect that sets them.
    """
    if total_frames <= 0:
        raise ValueError(f"total_frames must be positive, got {total_frames}")
    if not 0 <= frame_index < total_frames:
        raise ValueError(f"frame_index {frame_index} outside [0, {total_frames})")
    if not selection.enabled:
        return IDENTITY_TRANSFORM

    fields: Dict[str, object] = {
        "offset_x": 0.0,
        "offset_y": 0.0,
        "scale": 1.0,
        "rotation": 0.0,
        "opacity": 1.0,
    }
    for effect in selection.effects:
        phase = effect_phase(frame_index, total_frames, selection.speed_of(effect))
        for name, value in evaluate_effect(effect, phase, text_length).items():
            if name in _ADDITIVE:
                fields[name] += value
            elif name in _MULTIPLICATIVE:
                fields[name] *= value
            else:
                fields[name] = value

    fields["scale"] = max(0.0, fields["scale"])
    fields["opacity"] = min(1.0, max(0.0, fields["opacity"]))
    return replace(IDENTITY_TRANSFORM, **fields)
