"""
Image format support for uploaded templates and participant photos.
"""
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

HEIC_CONTENT_TYPES = ("image/heic", "image/heif", "image/heic-sequence", "image/heif-sequence")


def is_heic_file(filename: Optional[str], content_type: Optional[str] = None) -> bool:
    """True if the upload is likely HEIC/HEIF (phone cameras default to it)."""
    if filename:
        ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
        if ext in ("heic", "heif"):
            return True
    if content_type and content_type.lower() in HEIC_CONTENT_TYPES:
        return True
    return False


def convert_heic_to_jpeg(data: bytes, quality: int = 90) -> bytes:
    """
    Re-encode HEIC/HEIF bytes as JPEG, upright and without alpha.

    Raises:
        OSError: If Pillow cannot open the bytes (pillow-heif missing, corrupt file)
    """
    with Image.open(BytesIO(data)) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        out = BytesIO()
        img.save(out, format="JPEG", quality=quality, optimize=True)
    return out.getvalue()


def storable_upload(data: bytes, filename: Optional[str], content_type: Optional[str], default_type: str) -> Tuple[bytes, str]:
    """
    Bytes and content type to keep in media storage.

    HEIC uploads are converted to JPEG so browsers can show them; anything
    else is stored as sent.
    """
    if not is_heic_file(filename, content_type):
        return data, content_type or default_type
    try:
        return convert_heic_to_jpeg(data), "image/jpeg"
    except OSError:
        logger.warning("[image_formats] HEIC conversion failed for %s, storing original", filename)
        return data, content_type or default_type


def register_heif_opener() -> bool:
    """
    Register the HEIF/HEIC opener with Pillow if pillow-heif is available.

    Call this at application startup. Safe to call multiple times or if
    pillow-heif is not installed; HEIC uploads then fail to decode with a
    normal CompositionError.
    """
    try:
        from pillow_heif import register_heif_opener as _register
    except ImportError:
        logger.info("[image_formats] pillow-heif not installed; HEIC uploads are unsupported")
        return False
    _register()
    return True
