"""
Field geometry and normalization.

Every Field that reaches the editor or the compositor goes through
`normalize_field`. It never raises: malformed or out-of-range values are
replaced by documented defaults or clamped, so persisted data can't crash
either side. The function is pure and idempotent.

Order matters: width/height first, then x/y against the clamped size, then
style scalars.
"""
import dataclasses
import math
from typing import Any, Dict, Tuple, Type, TypeVar

from PIL import ImageColor

from domain.models import Field, FieldKind, FieldShape, Shadow, TextAlign

E = TypeVar("E")

MIN_SIZE_PCT = 1.0
MAX_PCT = 100.0

DEFAULT_WIDTH = 20.0
DEFAULT_HEIGHT = 5.0
DEFAULT_FONT_FAMILY = "Inter"
DEFAULT_FONT_SIZE = 16.0
MIN_FONT_SIZE = 8.0
MAX_FONT_SIZE = 120.0
DEFAULT_FONT_WEIGHT = 400
BOLD_FONT_WEIGHT = 700
MIN_LETTER_SPACING = -2.0
MAX_LETTER_SPACING = 100.0
DEFAULT_LINE_HEIGHT = 1.2
MIN_LINE_HEIGHT = 0.5
MAX_LINE_HEIGHT = 4.0
DEFAULT_BORDER_WIDTH = 2.0
MAX_BORDER_WIDTH = 200.0
MAX_SHADOW_BLUR = 200.0
MAX_SHADOW_OFFSET = 500.0
DEFAULT_TEXT_COLOR = "#000000"
DEFAULT_BORDER_COLOR = "#000000"
DEFAULT_BACKGROUND_COLOR = "#ffffff"
DEFAULT_SHADOW_COLOR = "#00000080"


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def finite_or(value: Any, default: float) -> float:
    """Coerce to a finite float, or return `default`."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _positive_or(value: Any, default: float) -> float:
    number = finite_or(value, default)
    return number if number > 0 else default


def _enum_or(enum_cls: Type[E], value: Any, default: E) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def _color_or(value: Any, default: str) -> str:
    if not isinstance(value, str) or not value.strip():
        return default
    candidate = value.strip()
    try:
        ImageColor.getrgb(candidate)
    except ValueError:
        return default
    return candidate


def _bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _int_or(value: Any, default: int) -> int:
    return int(round(finite_or(value, default)))


def _fit_axis(pos: Any, size: Any, default_size: float) -> Tuple[float, float]:
    size = clamp(finite_or(size, default_size), MIN_SIZE_PCT, MAX_PCT)
    pos = clamp(finite_or(pos, 0.0), 0.0, MAX_PCT - size)
    # 100 - size + size can land one ulp past 100
    if pos + size > MAX_PCT:
        pos = max(0.0, pos - 1e-9)
    return pos, size


def normalize_shadow(shadow: Any) -> Shadow:
    if not isinstance(shadow, Shadow):
        shadow = Shadow()
    return Shadow(
        enabled=_bool(shadow.enabled),
        blur=clamp(finite_or(shadow.blur, 8.0), 0.0, MAX_SHADOW_BLUR),
        color=_color_or(shadow.color, DEFAULT_SHADOW_COLOR),
        offset_x=clamp(finite_or(shadow.offset_x, 4.0), -MAX_SHADOW_OFFSET, MAX_SHADOW_OFFSET),
        offset_y=clamp(finite_or(shadow.offset_y, 4.0), -MAX_SHADOW_OFFSET, MAX_SHADOW_OFFSET),
    )


def normalize_field(field: Field) -> Field:
    """
    Return a copy of `field` with every attribute finite and in range.

    Pure, total and idempotent: normalize_field(normalize_field(f)) equals
    normalize_field(f) for any input.
    """
    x, width = _fit_axis(field.x, field.width, DEFAULT_WIDTH)
    y, height = _fit_axis(field.y, field.height, DEFAULT_HEIGHT)

    kind = _enum_or(FieldKind, field.kind, FieldKind.TEXT)
    name = field.name if isinstance(field.name, str) and field.name.strip() else (
        "Photo" if kind == FieldKind.PHOTO else "Name"
    )
    font_family = field.font_family if isinstance(field.font_family, str) and field.font_family.strip() else DEFAULT_FONT_FAMILY

    return dataclasses.replace(
        field,
        id=str(field.id) if field.id else Field.generate_id(),
        kind=kind,
        name=name,
        x=x,
        y=y,
        width=width,
        height=height,
        shape=_enum_or(FieldShape, field.shape, FieldShape.RECTANGLE),
        font_family=font_family.strip(),
        font_weight=int(clamp(_int_or(field.font_weight, DEFAULT_FONT_WEIGHT), 100, 900)),
        font_size=clamp(_positive_or(field.font_size, DEFAULT_FONT_SIZE), MIN_FONT_SIZE, MAX_FONT_SIZE),
        italic=_bool(field.italic),
        align=_enum_or(TextAlign, field.align, TextAlign.LEFT),
        color=_color_or(field.color, DEFAULT_TEXT_COLOR),
        letter_spacing=clamp(finite_or(field.letter_spacing, 0.0), MIN_LETTER_SPACING, MAX_LETTER_SPACING),
        line_height=clamp(_positive_or(field.line_height, DEFAULT_LINE_HEIGHT), MIN_LINE_HEIGHT, MAX_LINE_HEIGHT),
        border_enabled=_bool(field.border_enabled),
        border_width=clamp(finite_or(field.border_width, DEFAULT_BORDER_WIDTH), 0.0, MAX_BORDER_WIDTH),
        border_color=_color_or(field.border_color, DEFAULT_BORDER_COLOR),
        background_color=_color_or(field.background_color, DEFAULT_BACKGROUND_COLOR),
        background_opacity=clamp(finite_or(field.background_opacity, 0.0), 0.0, 1.0),
        opacity=clamp(finite_or(field.opacity, 1.0), 0.0, 1.0),
        rotation=clamp(finite_or(field.rotation, 0.0), -180.0, 180.0),
        shadow=normalize_shadow(field.shadow),
        z_index=_int_or(field.z_index, 0),
    )


def field_from_record(record: Dict[str, Any], position: int = 0) -> Field:
    """
    Build a normalized Field from a flat persisted record.

    Records come from storage and may be missing keys, hold None, or carry
    strings where numbers are expected. `position` becomes the z_index when
    the record has none.
    """
    kind = _enum_or(FieldKind, record.get("field_type"), FieldKind.TEXT)
    weight = record.get("font_weight")
    if weight is None:
        weight = BOLD_FONT_WEIGHT if _bool(record.get("font_bold")) else DEFAULT_FONT_WEIGHT
    z_index = record.get("z_index")
    shadow = Shadow(
        enabled=record.get("shadow_enabled") or False,
        blur=record.get("shadow_blur"),
        color=record.get("shadow_color"),
        offset_x=record.get("shadow_offset_x"),
        offset_y=record.get("shadow_offset_y"),
    )
    raw = Field(
        id=record.get("id") or Field.generate_id(),
        kind=kind,
        name=record.get("field_name"),
        x=record.get("x_position"),
        y=record.get("y_position"),
        width=record.get("width"),
        height=record.get("height"),
        shape=record.get("shape"),
        font_family=record.get("font_family"),
        font_weight=weight,
        font_size=record.get("font_size"),
        italic=record.get("font_italic") or False,
        align=record.get("text_align"),
        color=record.get("font_color"),
        letter_spacing=record.get("letter_spacing"),
        line_height=record.get("line_height"),
        border_enabled=record.get("border_enabled") or False,
        border_width=record.get("border_size"),
        border_color=record.get("border_color"),
        background_color=record.get("background_color"),
        background_opacity=record.get("background_opacity"),
        opacity=record.get("opacity"),
        rotation=record.get("rotation"),
        shadow=shadow,
        z_index=position if z_index is None else z_index,
    )
    return normalize_field(raw)


def field_to_record(field: Field) -> Dict[str, Any]:
    """Flat wire shape of a field; coordinates are always percentages."""
    return {
        "id": field.id,
        "field_type": field.kind.value,
        "field_name": field.name,
        "x_position": field.x,
        "y_position": field.y,
        "width": field.width,
        "height": field.height,
        "shape": field.shape.value,
        "font_family": field.font_family,
        "font_weight": field.font_weight,
        "font_bold": field.font_weight >= BOLD_FONT_WEIGHT,
        "font_size": field.font_size,
        "font_italic": field.italic,
        "text_align": field.align.value,
        "font_color": field.color,
        "letter_spacing": field.letter_spacing,
        "line_height": field.line_height,
        "border_enabled": field.border_enabled,
        "border_size": field.border_width,
        "border_color": field.border_color,
        "background_color": field.background_color,
        "background_opacity": field.background_opacity,
        "opacity": field.opacity,
        "rotation": field.rotation,
        "shadow_enabled": field.shadow.enabled,
        "shadow_blur": field.shadow.blur,
        "shadow_color": field.shadow.color,
        "shadow_offset_x": field.shadow.offset_x,
        "shadow_offset_y": field.shadow.offset_y,
        "z_index": field.z_index,
    }


def pixel_rect(field: Field, width_px: int, height_px: int) -> Tuple[float, float, float, float]:
    """Resolve a field's percentages against a pixel size: (left, top, width, height)."""
    return (
        field.x / 100.0 * width_px,
        field.y / 100.0 * height_px,
        field.width / 100.0 * width_px,
        field.height / 100.0 * height_px,
    )


def contains_point(field: Field, x_pct: float, y_pct: float) -> bool:
    return field.x <= x_pct <= field.right and field.y <= y_pct <= field.bottom


def paint_order(fields: Any) -> list:
    """Fields sorted by z_index ascending; ties keep their incoming order."""
    return [f for _, f in sorted(enumerate(fields), key=lambda pair: (pair[1].z_index, pair[0]))]


def with_changes(field: Field, **changes: Any) -> Field:
    """Apply attribute changes and re-normalize. Unknown keys are ignored."""
    known = {f.name for f in dataclasses.fields(Field)}
    applied = {k: v for k, v in changes.items() if k in known}
    if "shadow" in applied and isinstance(applied["shadow"], dict):
        applied["shadow"] = dataclasses.replace(field.shadow, **{
            k: v for k, v in applied["shadow"].items() if k in {s.name for s in dataclasses.fields(Shadow)}
        })
    return normalize_field(dataclasses.replace(field, **applied))


# Wire (record) names that differ from Field attribute names
_WIRE_TO_ATTR = {
    "field_type": "kind",
    "field_name": "name",
    "x_position": "x",
    "y_position": "y",
    "font_italic": "italic",
    "text_align": "align",
    "font_color": "color",
    "border_size": "border_width",
}
_SHADOW_WIRE = {
    "shadow_enabled": "enabled",
    "shadow_blur": "blur",
    "shadow_color": "color",
    "shadow_offset_x": "offset_x",
    "shadow_offset_y": "offset_y",
}


def changes_from_record(partial: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate a partial wire record into `with_changes` keyword arguments.

    Attribute names are accepted as-is; `font_bold` maps to a weight unless
    `font_weight` is also given.
    """
    changes: Dict[str, Any] = {}
    shadow: Dict[str, Any] = {}
    for key, value in partial.items():
        if key in _SHADOW_WIRE:
            shadow[_SHADOW_WIRE[key]] = value
        elif key == "font_bold":
            if "font_weight" not in partial:
                changes["font_weight"] = BOLD_FONT_WEIGHT if _bool(value) else DEFAULT_FONT_WEIGHT
        else:
            changes[_WIRE_TO_ATTR.get(key, key)] = value
    if shadow:
        changes["shadow"] = shadow
    return changes
