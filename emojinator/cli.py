from __future__ import annotations

import argparse
import logging
import os
import sys
import webbrowser
from dataclasses import replace
from threading import Timer
from typing import List, Optional

import yaml

from .config import Settings, configure_logging, load_settings
from .core.effects import EffectId
from .core.renderer import SceneRenderer, auto_fit_font_size
from .core.state import AnimationSelection, LayoutMode, ShadowPreset, StyleState, Stroke
from .core.errors import EmojinatorError
from .export import export_sticker, export_tiles
from .utils.fonts import FONTS, FontResolver
from .utils.image_cache import ImageCache

log = logging.getLogger(__name__)


def _parse_speed(value: str):
    name, _, speed = value.partition("=")
    if not speed:
        raise argparse.ArgumentTypeError(f"expected EFFECT=SPEED, got {value!r}")
    try:
        return EffectId(name), float(speed)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _add_state_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--state", help="YAML/JSON file with a saved style state")
    p.add_argument("--text", help="sticker text; use \\n for line breaks")
    p.add_argument("--font", choices=sorted(FONTS), help="catalog font id")
    p.add_argument("--size", type=int, help="font size in px")
    p.add_argument("--auto-size", action="store_true", help="pick the largest size that fits the canvas")
    p.add_argument("--regular", action="store_true", help="disable bold")
    p.add_argument("--italic", action="store_true")
    p.add_argument("--color", help="text color")
    p.add_argument("--background", help="background color or 'transparent'")
    p.add_argument("--background-image", help="PNG/JPEG drawn cover-fit behind the text")
    p.add_argument("--layout", choices=[m.value for m in LayoutMode])
    p.add_argument("--shadow", choices=[s.value for s in ShadowPreset])
    p.add_argument("--outline", metavar="COLOR", help="enable an outline in this color")
    p.add_argument("--outline-width", type=int, default=2)
    p.add_argument("--effect", action="append", default=[], choices=[e.value for e in EffectId],
                   help="animation effect; repeat to combine")
    p.add_argument("--speed", action="append", default=[], type=_parse_speed, metavar="EFFECT=SPEED")


def build_state(args: argparse.Namespace, fonts: FontResolver) -> StyleState:
    base = {}
    if args.state:
        with open(args.state, "r", encoding="utf-8") as f:
            base = yaml.safe_load(f) or {}
    state = StyleState.from_dict(base)

    if args.text is not None:
        state = replace(state, text=args.text.replace("\\n", "\n"))
    font = state.font
    if args.font:
        font = replace(font, id=args.font)
    if args.size:
        font = replace(font, size=args.size)
    if args.regular:
        font = replace(font, bold=False)
    if args.italic:
        font = replace(font, italic=True)
    if args.auto_size:
        font = replace(font, size=auto_fit_font_size(state.text, fonts, font.id))
    state = replace(state, font=font)

    if args.color:
        state = replace(state, text_color=args.color)
    if args.background:
        state = replace(state, background_color=args.background)
    if args.layout:
        state = replace(state, layout_mode=LayoutMode(args.layout))
    if args.shadow:
        state = replace(state, shadow=ShadowPreset(args.shadow))
    if args.outline:
        state = replace(state, stroke=Stroke(True, args.outline, args.outline_width))
    if args.background_image:
        with open(args.background_image, "rb") as f:
            data = f.read()
        state = replace(state, background_image=replace(state.background_image, data=data))
    if args.effect or args.speed:
        selection = AnimationSelection(
            effects=state.animation.effects + tuple(EffectId(e) for e in args.effect),
            speeds={**state.animation.speeds, **dict(args.speed)},
        )
        state = replace(state, animation=selection)
    return state


def cmd_render(args: argparse.Namespace, settings: Settings) -> int:
    fonts = FontResolver(settings.font_dirs or None)
    state = build_state(args, fonts)
    renderer = SceneRenderer(fonts)
    images = ImageCache(settings.image_cache_entries)
    background = images.get(state.background_image.data)

    if args.tiles:
        result = export_tiles(state, args.tiles, renderer, background)
    else:
        result = export_sticker(state, renderer, background)
    out = args.output or os.path.join(os.getcwd(), result.full_name)
    with open(out, "wb") as f:
        f.write(result.data)
    print(out)
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    from .web import create_app

    host = args.host or settings.host
    port = args.port or settings.port
    app = create_app(settings)
    if args.open:
        Timer(1.5, lambda: webbrowser.open(f"http://{host}:{port}")).start()
    log.info("serving on http://%s:%d", host, port)
    app.run(host=host, port=port, debug=False, threaded=True)
    return 0


def cmd_preview(args: argparse.Namespace, settings: Settings) -> int:
    # PySide6 ships in the optional "gui" extra
    from .preview import run_preview

    state = build_state(args, FontResolver(settings.font_dirs or None))
    return run_preview(state, settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="emojinator", description="Render text stickers as PNG or animated GIF")
    parser.add_argument("--config", help="settings YAML (defaults to $EMOJINATOR_CONFIG)")
    parser.add_argument("--log-level", help="override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("render", help="write a PNG, GIF or tile zip")
    _add_state_options(p)
    p.add_argument("-o", "--output", help="output path (defaults to a name derived from the text)")
    p.add_argument("--tiles", type=int, choices=(1, 2, 3), help="export an NxN tile zip instead")
    p.set_defaults(func=cmd_render)

    p = sub.add_parser("serve", help="run the HTTP editor")
    p.add_argument("--host")
    p.add_argument("--port", type=int)
    p.add_argument("--open", action="store_true", help="open a browser once the server is up")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("preview", help="open a live preview window")
    _add_state_options(p)
    p.set_defaults(func=cmd_preview)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args.config)
        configure_logging(args.log_level or settings.log_level)
        return args.func(args, settings)
    except (EmojinatorError, OSError, ValueError) as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
