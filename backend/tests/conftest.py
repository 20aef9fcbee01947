import sys
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image, ImageFont

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class DefaultFonts:
    """Stands in for the font gate: always Pillow's built-in scalable face."""

    def __init__(self):
        self.requested = []

    def font_for(self, spec, size_px):
        self.requested.append((spec, size_px))
        return ImageFont.load_default(size=size_px)


@pytest.fixture
def fonts():
    return DefaultFonts()


@pytest.fixture
def png_bytes():
    def _make(size=(200, 100), color=(255, 255, 255, 255), fmt="PNG"):
        buf = BytesIO()
        img = Image.new("RGBA", size, color)
        if fmt == "JPEG":
            img = img.convert("RGB")
        img.save(buf, format=fmt)
        return buf.getvalue()
    return _make
