from io import BytesIO

import pytest
from PIL import Image

from services.image_formats import is_heic_file, storable_upload


@pytest.mark.parametrize("filename,content_type,expected", [
    ("IMG_0001.HEIC", None, True),
    ("photo.heif", "application/octet-stream", True),
    ("upload", "image/heic", True),
    ("photo.jpg", "image/jpeg", False),
    (None, None, False),
])
def test_is_heic_file(filename, content_type, expected):
    assert is_heic_file(filename, content_type) is expected


def test_non_heic_uploads_are_stored_as_sent(png_bytes):
    data = png_bytes()
    assert storable_upload(data, "bg.png", "image/png", "image/jpeg") == (data, "image/png")
    assert storable_upload(data, "bg", None, "image/png") == (data, "image/png")


def test_heic_uploads_are_converted_to_jpeg(png_bytes):
    stored, content_type = storable_upload(png_bytes(size=(40, 30)), "me.heic", "image/heic", "image/jpeg")
    assert content_type == "image/jpeg"
    with Image.open(BytesIO(stored)) as img:
        assert img.format == "JPEG"
        assert img.size == (40, 30)


def test_unreadable_heic_is_kept_as_is():
    stored, content_type = storable_upload(b"not an image", "me.heic", "image/heic", "image/jpeg")
    assert (stored, content_type) == (b"not an image", "image/heic")
