import json
import sys

from PIL import Image

from scripts import render_card


def test_cli_renders_card_with_legacy_fields(tmp_path, monkeypatch, png_bytes):
    template = tmp_path / "bg.png"
    template.write_bytes(png_bytes(size=(320, 240)))
    fields = tmp_path / "fields.json"
    fields.write_text(json.dumps([
        {"field_type": "text", "field_name": "Name", "x_position": 400, "y_position": 300, "width": 160, "height": 120},
    ]))
    out = tmp_path / "out" / "card.png"

    monkeypatch.setattr(sys, "argv", [
        "render_card",
        "--template", str(template),
        "--fields", str(fields),
        "--value", "Name=Ada Lovelace",
        "--watermark",
        "--fonts-dir", str(tmp_path / "no-fonts"),
        "--font-timeout", "0.1",
        "--out", str(out),
    ])
    assert render_card.main() == 0
    with Image.open(out) as card:
        assert card.size == (320, 240)


def test_cli_reports_bad_inputs(tmp_path, monkeypatch):
    monkeypatch.setattr(sys, "argv", [
        "render_card",
        "--template", str(tmp_path / "missing.png"),
        "--fields", str(tmp_path / "missing.json"),
    ])
    assert render_card.main() == 2
