"""
Card compositor.

Pure rendering: (template image, fields, submitted values, watermark flag)
-> RGBA bitmap at the template's native resolution. Field percentages are
resolved against the template's own pixel size, never against an editor
viewport, so output does not depend on how the template was displayed.

Each field is drawn on its own scoped layer (`field_layer`) that is
composited back onto the canvas when the block exits. Clip, rotation,
opacity and shadow live on that layer only, so nothing leaks from one field
to the next. If any step raises, the canvas passed to the block is left as
it was and the exception propagates: callers never see a half-drawn card.
"""
import contextlib
import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFilter, ImageOps

from domain.models import Field, FieldKind, FieldShape, TextAlign
from services.fonts import FontSpec
from services.geometry import normalize_field, paint_order, pixel_rect
from settings import settings

logger = logging.getLogger(__name__)

# Text sizes are authored against an editor roughly 600px tall
EDITOR_REFERENCE_HEIGHT = 600.0
MIN_TEXT_PX = 12
TEXT_INSET_PX = 4.0
ROUNDED_RADIUS_PX = 12.0
ELLIPSIS = "…"
SUPERSAMPLE = 4

WATERMARK_FONT_PX = 16
WATERMARK_MARGIN_PX = 10
WATERMARK_COLOR = (0, 0, 0, 77)
WATERMARK_SPEC = FontSpec("Inter", 700, False)


class CompositionError(RuntimeError):
    """A resource needed for the card could not be used."""


@dataclass
class FieldLayer:
    """Transparent drawing surface for one field plus its clip mask."""
    field: Field
    image: Image.Image
    mask: Image.Image

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


# ============================================
# Geometry helpers
# ============================================

def cover_fit(src_w: float, src_h: float, box_w: float, box_h: float) -> Tuple[float, float, float, float]:
    """
    Aspect-fill placement of a source image inside a box.

    Returns (draw_w, draw_h, offset_x, offset_y) relative to the box's top
    left. The drawn image always covers the whole box; overflow is centred
    and cropped.
    """
    image_aspect = src_w / src_h
    rect_aspect = box_w / box_h
    if image_aspect > rect_aspect:
        draw_h = box_h
        draw_w = box_h * image_aspect
        return draw_w, draw_h, -(draw_w - box_w) / 2.0, 0.0
    draw_w = box_w
    draw_h = box_w / image_aspect
    return draw_w, draw_h, 0.0, -(draw_h - box_h) / 2.0


def cover_crop_box(src_w: int, src_h: int, box_w: int, box_h: int) -> Tuple[float, float, float, float]:
    """Region of the source that `cover_fit` makes visible, in source pixels."""
    draw_w, draw_h, off_x, off_y = cover_fit(src_w, src_h, box_w, box_h)
    scale = src_w / draw_w
    left = -off_x * scale
    top = -off_y * scale
    # float error must not push the box past the source edges
    return (
        max(0.0, left),
        max(0.0, top),
        min(float(src_w), left + box_w * scale),
        min(float(src_h), top + box_h * scale),
    )


def corner_radius(shape: FieldShape, size: Tuple[int, int]) -> float:
    short_side = min(size) / 2.0
    if shape == FieldShape.CIRCLE:
        return short_side
    if shape == FieldShape.ROUNDED:
        return min(ROUNDED_RADIUS_PX, short_side)
    return 0.0


def _draw_shape(draw: ImageDraw.ImageDraw, shape: FieldShape, box: Tuple[float, float, float, float], radius: float, fill: int) -> None:
    if box[2] <= box[0] or box[3] <= box[1]:
        return
    if shape == FieldShape.CIRCLE:
        draw.ellipse(box, fill=fill)
    elif radius > 0:
        draw.rounded_rectangle(box, radius=radius, fill=fill)
    else:
        draw.rectangle(box, fill=fill)


def shape_mask(shape: FieldShape, size: Tuple[int, int], inset: float = 0.0) -> Image.Image:
    """
    Anti-aliased clip mask ("L") for a shape filling `size`.

    `inset` shrinks the shape uniformly; used to cut the inner edge of a
    border.
    """
    w, h = size
    big = Image.new("L", (w * SUPERSAMPLE, h * SUPERSAMPLE), 0)
    radius = max(0.0, corner_radius(shape, size) - inset)
    box = (
        inset * SUPERSAMPLE,
        inset * SUPERSAMPLE,
        (w - inset) * SUPERSAMPLE - 1,
        (h - inset) * SUPERSAMPLE - 1,
    )
    _draw_shape(ImageDraw.Draw(big), shape, box, radius * SUPERSAMPLE, 255)
    return big.resize((w, h), Image.LANCZOS)


def _ring_mask(shape: FieldShape, size: Tuple[int, int], width: float) -> Image.Image:
    return ImageChops.subtract(shape_mask(shape, size), shape_mask(shape, size, inset=width))


def _rgba(color: str) -> Tuple[int, int, int, int]:
    rgb = ImageColor.getrgb(color)
    if len(rgb) == 3:
        return (rgb[0], rgb[1], rgb[2], 255)
    return rgb


def _solid(size: Tuple[int, int], color: str, mask: Image.Image, opacity: float = 1.0) -> Image.Image:
    """A colour fill whose alpha is `mask` scaled by the colour's alpha and `opacity`."""
    r, g, b, a = _rgba(color)
    factor = (a / 255.0) * opacity
    fill = Image.new("RGBA", size, (r, g, b, 0))
    fill.putalpha(mask.point(lambda v: int(round(v * factor))))
    return fill


# ============================================
# Text helpers
# ============================================

def measure_text(font, text: str, letter_spacing: float = 0.0) -> float:
    """
    Advance width of `text`.

    With letter spacing the text is laid out glyph by glyph, so the
    measurement does the same: sum of advances plus spacing between glyphs.
    """
    if not text:
        return 0.0
    if letter_spacing == 0:
        return float(font.getlength(text))
    return sum(float(font.getlength(ch)) for ch in text) + letter_spacing * (len(text) - 1)


def truncate_to_width(text: str, max_width: float, measure: Callable[[str], float], ellipsis: str = ELLIPSIS) -> str:
    """
    Longest prefix of `text` that fits `max_width`, with an ellipsis if cut.

    Binary search over the prefix length. Requires `measure` to be monotonic:
    removing characters must never make a string wider.
    """
    if not text or max_width <= 0:
        return ""
    if measure(text) <= max_width:
        return text
    lo, hi = 0, len(text) - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if measure(text[:mid] + ellipsis) <= max_width:
            lo = mid
        else:
            hi = mid - 1
    candidate = text[:lo] + ellipsis
    if measure(candidate) > max_width:
        return ""
    return candidate


def text_size_px(field: Field, canvas_height: int) -> int:
    return max(MIN_TEXT_PX, int(round(field.font_size * canvas_height / EDITOR_REFERENCE_HEIGHT)))


def _draw_line(draw: ImageDraw.ImageDraw, origin: Tuple[float, float], text: str, font, letter_spacing: float) -> None:
    if letter_spacing == 0:
        draw.text(origin, text, font=font, fill=255, anchor="lm")
        return
    x, y = origin
    for ch in text:
        draw.text((x, y), ch, font=font, fill=255, anchor="lm")
        x += float(font.getlength(ch)) + letter_spacing


# ============================================
# Layer scope
# ============================================

def _composite_layer(canvas: Image.Image, layer: FieldLayer, rect: Tuple[float, float, float, float]) -> None:
    field = layer.field
    image = layer.image
    left, top, width, height = rect

    if field.shadow.enabled:
        blur = field.shadow.blur
        ox, oy = field.shadow.offset_x, field.shadow.offset_y
        pad = int(math.ceil(blur * 2 + max(abs(ox), abs(oy)))) + 1
        padded = Image.new("RGBA", (image.width + 2 * pad, image.height + 2 * pad), (0, 0, 0, 0))
        padded.paste(image, (pad, pad))
        shadow_alpha = Image.new("L", padded.size, 0)
        shadow_alpha.paste(image.getchannel("A"), (pad + int(round(ox)), pad + int(round(oy))))
        if blur > 0:
            # canvas-style blur radius is roughly twice the gaussian sigma
            shadow_alpha = shadow_alpha.filter(ImageFilter.GaussianBlur(blur / 2.0))
        shadow = _solid(padded.size, field.shadow.color, shadow_alpha)
        image = Image.alpha_composite(shadow, padded)

    if field.rotation:
        # PIL rotates counter-clockwise; field rotation is clockwise on screen
        image = image.rotate(-field.rotation, resample=Image.BICUBIC, expand=True)

    if field.opacity < 1.0:
        alpha = image.getchannel("A").point(lambda v: int(round(v * field.opacity)))
        image.putalpha(alpha)

    center_x = left + width / 2.0
    center_y = top + height / 2.0
    dest = (int(round(center_x - image.width / 2.0)), int(round(center_y - image.height / 2.0)))
    overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    overlay.paste(image, dest)
    canvas.alpha_composite(overlay)


@contextlib.contextmanager
def field_layer(canvas: Image.Image, field: Field) -> Iterator[FieldLayer]:
    """
    Acquire a clean layer for `field`, let the caller draw on it, then
    composite it onto `canvas` with the field's transform, opacity and
    shadow. Nothing is composited if the block raises.
    """
    rect = pixel_rect(field, canvas.width, canvas.height)
    size = (max(1, int(round(rect[2]))), max(1, int(round(rect[3]))))
    layer = FieldLayer(
        field=field,
        image=Image.new("RGBA", size, (0, 0, 0, 0)),
        mask=shape_mask(field.shape, size),
    )
    yield layer
    _composite_layer(canvas, layer, rect)


# ============================================
# Field painters
# ============================================

def _paint_border(layer: FieldLayer) -> None:
    field = layer.field
    if not field.border_enabled or field.border_width <= 0:
        return
    ring = _ring_mask(field.shape, layer.size, field.border_width)
    layer.image.alpha_composite(_solid(layer.size, field.border_color, ring))


def _paint_photo(layer: FieldLayer, photo: Image.Image) -> None:
    w, h = layer.size
    crop = cover_crop_box(photo.width, photo.height, w, h)
    fitted = photo.convert("RGBA").resize((w, h), Image.LANCZOS, box=crop)
    fitted.putalpha(ImageChops.multiply(fitted.getchannel("A"), layer.mask))
    layer.image.alpha_composite(fitted)
    _paint_border(layer)


def _paint_text(layer: FieldLayer, text: str, fonts, canvas_height: int) -> None:
    field = layer.field
    w, h = layer.size

    if field.background_opacity > 0:
        layer.image.alpha_composite(_solid(layer.size, field.background_color, layer.mask, field.background_opacity))
    _paint_border(layer)

    lines = (text or "").splitlines()
    if not any(line.strip() for line in lines):
        return

    size_px = text_size_px(field, canvas_height)
    font = fonts.font_for(FontSpec(field.font_family, field.font_weight, field.italic), size_px)
    scale = canvas_height / EDITOR_REFERENCE_HEIGHT
    spacing = field.letter_spacing * scale
    padding = (field.border_width if field.border_enabled else 0.0) + TEXT_INSET_PX
    available = max(0.0, w - padding * 2)

    def measure(s: str) -> float:
        return measure_text(font, s, spacing)

    advance = field.line_height * size_px
    first_y = h / 2.0 - advance * (len(lines) - 1) / 2.0
    text_mask = Image.new("L", layer.size, 0)
    draw = ImageDraw.Draw(text_mask)
    for index, raw_line in enumerate(lines):
        line = truncate_to_width(raw_line, available, measure)
        if not line:
            continue
        line_w = measure(line)
        if field.align == TextAlign.CENTER:
            x = padding + (available - line_w) / 2.0
        elif field.align == TextAlign.RIGHT:
            x = padding + available - line_w
        else:
            x = padding
        _draw_line(draw, (x, first_y + index * advance), line, font, spacing)

    clipped = ImageChops.multiply(text_mask, layer.mask)
    layer.image.alpha_composite(_solid(layer.size, field.color, clipped))


# ============================================
# Watermark
# ============================================

def watermark_box(canvas_size: Tuple[int, int], text: str, font) -> Tuple[int, int, int, int]:
    """Bounding box of the watermark label for a canvas of `canvas_size`."""
    scratch = ImageDraw.Draw(Image.new("L", (1, 1)))
    anchor_xy = (canvas_size[0] - WATERMARK_MARGIN_PX, canvas_size[1] - WATERMARK_MARGIN_PX)
    return tuple(int(v) for v in scratch.textbbox(anchor_xy, text, font=font, anchor="rd"))


def _draw_watermark(canvas: Image.Image, text: str, fonts) -> None:
    if not text:
        return
    font = fonts.font_for(WATERMARK_SPEC, WATERMARK_FONT_PX)
    mask = Image.new("L", canvas.size, 0)
    anchor_xy = (canvas.width - WATERMARK_MARGIN_PX, canvas.height - WATERMARK_MARGIN_PX)
    ImageDraw.Draw(mask).text(anchor_xy, text, font=font, fill=255, anchor="rd")
    r, g, b, a = WATERMARK_COLOR
    label = Image.new("RGBA", canvas.size, (r, g, b, 0))
    label.putalpha(mask.point(lambda v: v * a // 255))
    canvas.alpha_composite(label)


# ============================================
# Entry points
# ============================================

def decode_image(data: Optional[bytes], label: str = "image") -> Image.Image:
    """
    Decode image bytes into an RGBA image, honouring EXIF orientation.

    Raises:
        CompositionError: If the bytes are missing or not a readable image
    """
    if not data:
        raise CompositionError(f"{label} is empty")
    try:
        img = Image.open(BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise CompositionError(f"could not decode {label}: {exc}") from exc
    return img.convert("RGBA")


def render_card(
    template: Image.Image,
    fields: Iterable[Field],
    values: Dict[str, str],
    watermark: bool,
    photo: Optional[Image.Image] = None,
    fonts=None,
    watermark_text: Optional[str] = None,
) -> Image.Image:
    """
    Composite a card.

    Args:
        template: Background image; its native size is the output size
        fields: Fields to draw (normalized again here, order by z_index)
        values: Submitted text values keyed by field name
        watermark: Draw the branding label in the bottom-right corner
        photo: Decoded participant photo, if any
        fonts: Object with `font_for(spec, size_px)`; defaults to the shared gate
        watermark_text: Label override (defaults to settings.WATERMARK_TEXT)

    Returns:
        New RGBA image; `template` is not modified.
    """
    if fonts is None:
        from services.fonts import get_default_gate

        fonts = get_default_gate()

    # convert() always returns a new image, so the template is never drawn on
    canvas = template.convert("RGBA")
    ordered = paint_order([normalize_field(f) for f in fields])

    for field in ordered:
        if field.kind == FieldKind.PHOTO and photo is None:
            logger.debug("[compositor] no photo for field %s, leaving it empty", field.name)
            continue
        with field_layer(canvas, field) as layer:
            if field.kind == FieldKind.PHOTO:
                _paint_photo(layer, photo)
            else:
                _paint_text(layer, values.get(field.name, ""), fonts, canvas.height)
        if settings.DEBUG_RENDER:
            logger.debug(
                "[compositor] drew %s field=%s z=%s rect=(%.1f, %.1f, %.1f, %.1f)",
                field.kind.value, field.name, field.z_index, field.x, field.y, field.width, field.height,
            )

    if watermark:
        _draw_watermark(canvas, watermark_text if watermark_text is not None else settings.WATERMARK_TEXT, fonts)
    return canvas


def encode_png(image: Image.Image) -> bytes:
    """Lossless, alpha-capable export format for generated cards."""
    buf = BytesIO()
    image.save(buf, format="PNG", optimize=True)
    return buf.getvalue()
