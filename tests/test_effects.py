import math

import pytest

from emojinator.core.effects import (
    IDENTITY_TRANSFORM,
    TOTAL_FRAMES,
    WAVEFORMS,
    EffectId,
    compute_frame_transform,
    ease_in_out_sine,
    ease_out_bounce,
    effect_phase,
    evaluate_effect,
)
from emojinator.core.state import AnimationSelection, selection_of

N = TOTAL_FRAMES


def transforms(selection, text_length=0):
    return [compute_frame_transform(selection, i, N, text_length) for i in range(N)]


def test_registry_covers_every_effect():
    assert set(WAVEFORMS) == set(EffectId)
    assert len(EffectId) == 15


def test_easing_endpoints():
    assert ease_in_out_sine(0) == pytest.approx(0)
    assert ease_in_out_sine(1) == pytest.approx(1)
    assert ease_out_bounce(0) == pytest.approx(0)
    assert ease_out_bounce(1) == pytest.approx(1)


def test_empty_selection_is_identity_for_every_frame():
    for t in transforms(AnimationSelection()):
        assert t is IDENTITY_TRANSFORM
        assert t.is_identity


@pytest.mark.parametrize("frame,total", [(-1, 20), (20, 20), (0, 0), (0, -5)])
def test_invalid_frame_arguments(frame, total):
    with pytest.raises(ValueError):
        compute_frame_transform(selection_of("blink"), frame, total, 2)


class TestWaveforms:
    def test_blink_is_a_hard_square_wave(self):
        for i, t in enumerate(transforms(selection_of("blink"))):
            assert t.opacity == (1.0 if i / N < 0.5 else 0.0)

    def test_rotate_sweeps_a_full_turn(self):
        rot = [t.rotation for t in transforms(selection_of("rotate"))]
        assert rot[0] == 0
        assert rot[N // 2] == pytest.approx(math.pi)
        assert all(b > a for a, b in zip(rot, rot[1:]))
        assert rot[-1] == pytest.approx(2 * math.pi * (N - 1) / N)

    def test_rainbow_hue_tracks_progress(self):
        for i, t in enumerate(transforms(selection_of("rainbow"))):
            assert t.hue_shift == pytest.approx(360 * i / N)

    def test_typing_reveals_monotonically(self):
        length = 5
        visible = [t.visible_chars for t in transforms(selection_of("typing"), length)]
        assert visible[0] == 0
        assert all(b >= a for a, b in zip(visible, visible[1:]))
        for i, v in enumerate(visible):
            if i / N >= 0.7:
                assert v == length
        assert visible[-1] == length

    def test_wave_offsets_per_character(self):
        t = compute_frame_transform(selection_of("wave"), 5, N, 4)
        assert len(t.char_offsets) == 4
        assert t.char_offsets[0] == pytest.approx(8 * math.sin(0.25 * 2 * math.pi))
        assert all(abs(o) <= 8 for o in t.char_offsets)

    def test_wave_with_no_text_is_empty(self):
        assert compute_frame_transform(selection_of("wave"), 3, N, 0).char_offsets == ()

    def test_scroll_ping_pongs_across_the_canvas(self):
        ts = transforms(selection_of("scroll-h"))
        assert ts[0].offset_x == 0
        assert ts[5].offset_x == pytest.approx(64)
        assert ts[15].offset_x == pytest.approx(-64)
        assert transforms(selection_of("scroll-v"))[5].offset_y == pytest.approx(64)

    def test_pop_overshoots_then_settles(self):
        scales = [t.scale for t in transforms(selection_of("pop"))]
        assert scales[0] == pytest.approx(0.5)
        assert scales[10] == pytest.approx(1.2)
        assert scales[-1] == pytest.approx(1.0)

    def test_neon_glow_range(self):
        glows = [t.glow_intensity for t in transforms(selection_of("neon"))]
        assert glows[0] == pytest.approx(0.5)
        assert all(0 <= g <= 1 for g in glows)

    def test_bounce_only_moves_upward(self):
        assert all(t.offset_y <= 0 for t in transforms(selection_of("bounce")))

    def test_zoom_and_fade_stay_in_range(self):
        for t in transforms(selection_of("zoom", "fade")):
            assert 0 <= t.opacity <= 1
            assert 0.5 - 1e-9 <= t.scale <= 1 + 1e-9


class TestComposition:
    def test_scale_multiplies_and_rotation_adds(self):
        sel = selection_of("pulse", "wobble", "rotate")
        for i in range(N):
            p = effect_phase(i, N)
            pulse = evaluate_effect(EffectId.PULSE, p)
            wobble = evaluate_effect(EffectId.WOBBLE, p)
            rotate = evaluate_effect(EffectId.ROTATE, p)
            t = compute_frame_transform(sel, i, N, 0)
            assert t.scale == pytest.approx(pulse["scale"] * wobble["scale"])
            assert t.rotation == pytest.approx(rotate["rotation"] + wobble["rotation"])

    def test_opacity_multiplies_and_offsets_add(self):
        sel = selection_of("blink", "fade", "shake", "scroll-h", "bounce")
        for i in range(N):
            p = effect_phase(i, N)
            t = compute_frame_transform(sel, i, N, 0)
            opacity = evaluate_effect(EffectId.BLINK, p)["opacity"] * evaluate_effect(EffectId.FADE, p)["opacity"]
            offset_x = evaluate_effect(EffectId.SHAKE, p)["offset_x"] + evaluate_effect(EffectId.SCROLL_H, p)["offset_x"]
            assert t.opacity == pytest.approx(opacity)
            assert t.offset_x == pytest.approx(offset_x)
            assert t.offset_y == pytest.approx(evaluate_effect(EffectId.BOUNCE, p)["offset_y"])

    def test_speed_scales_phase(self):
        fast = selection_of("blink", blink=2)
        # frame 5 of 20 at double speed sits at phase 0.5
        assert compute_frame_transform(fast, 5, N, 0).opacity == 0.0
        assert compute_frame_transform(selection_of("blink"), 5, N, 0).opacity == 1.0

    def test_speed_wraps_phase(self):
        assert effect_phase(15, N, 2.0) == pytest.approx(0.5)
        assert effect_phase(10, N, 3.0) == pytest.approx(0.5)

    def test_untouched_fields_keep_identity_values(self):
        t = compute_frame_transform(selection_of("rotate"), 3, N, 2)
        assert t.visible_chars is None
        assert t.char_offsets is None
        assert t.hue_shift == 0
        assert t.opacity == 1
