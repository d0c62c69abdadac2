import io
import zipfile

import pytest
from PIL import Image

from emojinator.cli import build_parser, main


def test_render_png(tmp_path):
    out = tmp_path / "hi.png"
    assert main(["render", "--text", "HI", "--color", "#ff0000", "-o", str(out)]) == 0
    with Image.open(out) as im:
        assert im.size == (128, 128)
        assert im.format == "PNG"


def test_render_gif_with_effects(tmp_path):
    out = tmp_path / "hi.gif"
    assert main(["render", "--text", "HI", "--effect", "blink", "--effect", "rotate",
                 "--speed", "rotate=2", "-o", str(out)]) == 0
    assert out.read_bytes()[:6] == b"GIF89a"


def test_render_tiles(tmp_path):
    out = tmp_path / "tiles.zip"
    assert main(["render", "--text", "A\\nB", "--tiles", "2", "-o", str(out)]) == 0
    with zipfile.ZipFile(out) as zf:
        assert sorted(zf.namelist()) == ["A-B_1_1.png", "A-B_1_2.png", "A-B_2_1.png", "A-B_2_2.png"]


def test_state_file(tmp_path):
    state = tmp_path / "state.yaml"
    state.write_text("text: YO\nlayout_mode: fit-fill\nanimation:\n  effects: [pulse]\n", encoding="utf-8")
    out = tmp_path / "yo.gif"
    assert main(["render", "--state", str(state), "-o", str(out)]) == 0
    assert out.read_bytes()[:6] == b"GIF89a"


def test_default_output_name(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["render", "--text", "ab\ncd", "--auto-size"]) == 0
    assert (tmp_path / "ab-cd.png").exists()
    assert "ab-cd.png" in capsys.readouterr().out


def test_bad_state_file_reports_error(tmp_path):
    state = tmp_path / "state.yaml"
    state.write_text("colour: red\n", encoding="utf-8")
    assert main(["render", "--state", str(state)]) == 1


def test_bad_speed_is_a_usage_error():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["render", "--speed", "blink"])


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
