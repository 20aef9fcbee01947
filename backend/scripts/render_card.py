"""Render a single card offline, without the API or database.

Usage:
    python -m scripts.render_card --template bg.png --fields fields.json \
        --value Name="Ada Lovelace" --value Role=Engineer --photo ada.jpg --out card.png

The fields file holds a JSON list of field records as the API returns them
(older pixel-based records are migrated on load). Fonts are looked up in
FONTS_DIR (or --fonts-dir) and the font readiness gate is awaited before
drawing, so a slow or missing face degrades to the fallback instead of
hanging.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, List

from services.compositor import CompositionError, decode_image, encode_png, render_card
from services.fonts import FontReadinessGate, FontRegistry, fonts_for_fields
from services.image_formats import register_heif_opener
from services.legacy_migration import load_fields
from settings import settings

logger = logging.getLogger("render_card")


def _parse_values(pairs: List[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"--value expects NAME=TEXT, got {pair!r}")
        name, text = pair.split("=", 1)
        values[name.strip()] = text.replace("\\n", "\n")
    return values


def main() -> int:
    if not logger.handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    parser = argparse.ArgumentParser(description="Render a card from a template image and a field list.")
    parser.add_argument("--template", required=True, help="Template background image.")
    parser.add_argument("--fields", required=True, help="JSON file with a list of field records.")
    parser.add_argument("--value", action="append", default=[], metavar="NAME=TEXT", help="Text value for a field (repeatable).")
    parser.add_argument("--photo", default=None, help="Participant photo for photo fields.")
    parser.add_argument("--watermark", action="store_true", help="Draw the branding watermark.")
    parser.add_argument("--fonts-dir", default=settings.FONTS_DIR, help="Directory of .ttf/.otf files.")
    parser.add_argument("--font-timeout", type=float, default=settings.FONT_READY_TIMEOUT_SEC)
    parser.add_argument("--out", default="card.png", help="Output PNG path.")
    args = parser.parse_args()

    register_heif_opener()
    try:
        values = _parse_values(args.value)
        records = json.loads(Path(args.fields).read_text(encoding="utf-8"))
        if not isinstance(records, list):
            raise ValueError("fields file must contain a JSON list")
        template = decode_image(Path(args.template).read_bytes(), "template")
        photo = decode_image(Path(args.photo).read_bytes(), "photo") if args.photo else None
    except (OSError, ValueError, CompositionError) as exc:
        logger.error("Could not load inputs: %s", exc)
        return 2

    fields = load_fields(records)
    registry = FontRegistry()
    found = registry.discover(args.fonts_dir)
    gate = FontReadinessGate(registry, timeout=args.font_timeout)
    ready = asyncio.run(gate.ready(fonts_for_fields(fields), "".join(values.values())))
    logger.info("Fonts: %s discovered, ready=%s", found, ready)

    card = render_card(template, fields, values, args.watermark, photo=photo, fonts=gate)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(encode_png(card))
    logger.info("Wrote %s (%sx%s, %s field(s))", out_path, card.width, card.height, len(fields))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
