from __future__ import annotations

import base64
import io
import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify, render_template_string, request, send_file
from PIL import Image

from .config import Settings
from .core.effects import TOTAL_FRAMES, compute_frame_transform
from .core.renderer import SceneRenderer
from .core.state import StyleState
from .export import encode_png, export_sticker, export_tiles
from .utils.fonts import FontResolver
from .utils.image_cache import ImageCache

log = logging.getLogger(__name__)

HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>emojinator</title>
    <style>
        body { font-family: sans-serif; background: #1e1e1e; color: #ddd; display: flex; gap: 24px; padding: 24px; }
        textarea { width: 220px; height: 80px; }
        img { width: 256px; height: 256px; image-rendering: pixelated; background: #fff; }
    </style>
</head>
<body>
    <div>
        <textarea id="text">りち
もじ</textarea><br>
        <input id="color" type="color" value="#000000">
        <button onclick="preview()">Preview</button>
        <button onclick="download()">Download</button>
    </div>
    <img id="out">
    <script>
        function state() {
            return { text: document.getElementById('text').value,
                     text_color: document.getElementById('color').value };
        }
        async function preview() {
            const res = await fetch('/render', { method: 'POST', headers: { 'Content-Type': 'application/json' },
                                                 body: JSON.stringify({ state: state() }) });
            const data = await res.json();
            if (data.success) document.getElementById('out').src = 'data:image/png;base64,' + data.image_data;
        }
        async function download() {
            const res = await fetch('/export', { method: 'POST', headers: { 'Content-Type': 'application/json' },
                                                 body: JSON.stringify({ state: state() }) });
            const blob = await res.blob();
            const a = document.createElement('a');
            a.href = URL.createObjectURL(blob);
            a.download = 'emoji';
            a.click();
        }
        preview();
    </script>
</body>
</html>
"""


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object body")
    return data


def create_app(
    settings: Optional[Settings] = None,
    renderer: Optional[SceneRenderer] = None,
    images: Optional[ImageCache] = None,
) -> Flask:
    settings = settings or Settings()
    renderer = renderer or SceneRenderer(FontResolver(settings.font_dirs or None))
    images = images or ImageCache(settings.image_cache_entries)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes

    def background_for(state: StyleState) -> Optional[Image.Image]:
        return images.get(state.background_image.data)

    def error(e: Exception):
        log.warning("request to %s failed: %s", request.path, e)
        return jsonify({"success": False, "error": str(e)}), 400

    @app.route("/")
    def index():
        return render_template_string(HTML_TEMPLATE)

    @app.route("/upload", methods=["POST"])
    def upload_image():
        try:
            file = request.files["file"]
            raw = file.read()
            img = Image.open(io.BytesIO(raw))
            img.load()
            buf = io.BytesIO()
            img.convert("RGBA").save(buf, format="PNG")
            encoded = base64.b64encode(buf.getvalue()).decode()
            images.put(encoded, img.convert("RGBA"))
            return jsonify({"success": True, "image_data": encoded, "width": img.width, "height": img.height})
        except Exception as e:
            return error(e)

    @app.route("/render", methods=["POST"])
    def render_frame():
        try:
            data = _payload()
            state = StyleState.from_dict(data.get("state"))
            frame = int(data.get("frame", 0))
            transform = compute_frame_transform(state.animation, frame, TOTAL_FRAMES, state.visible_text_length)
            surface = renderer.render_new(state, transform, background_for(state))
            encoded = base64.b64encode(encode_png(surface.image)).decode()
            return jsonify({"success": True, "frame": frame, "image_data": encoded})
        except Exception as e:
            return error(e)

    @app.route("/export", methods=["POST"])
    def export():
        try:
            state = StyleState.from_dict(_payload().get("state"))
            result = export_sticker(state, renderer, background_for(state))
        except Exception as e:
            return error(e)
        return send_file(
            io.BytesIO(result.data),
            mimetype=result.mime_type,
            as_attachment=True,
            download_name=result.full_name,
        )

    @app.route("/export/tiles", methods=["POST"])
    def export_tile_zip():
        try:
            data = _payload()
            state = StyleState.from_dict(data.get("state"))
            result = export_tiles(state, int(data.get("grid", 2)), renderer, background_for(state))
        except Exception as e:
            return error(e)
        return send_file(
            io.BytesIO(result.data),
            mimetype=result.mime_type,
            as_attachment=True,
            download_name=result.full_name,
        )

    return app
