import math

import pytest

from domain.models import Field, FieldKind, FieldShape, Shadow, TextAlign
from services.geometry import (
    changes_from_record,
    field_from_record,
    field_to_record,
    normalize_field,
    paint_order,
    pixel_rect,
    with_changes,
)


def _field(**overrides) -> Field:
    base = dict(id="f1", kind=FieldKind.TEXT, name="Name")
    base.update(overrides)
    return Field(**base)


MALFORMED = [
    _field(),
    _field(x=float("nan"), y=-5, width=float("inf"), height=250),
    _field(x=99.9, y=99.9, width=50, height=50),
    _field(x=1e308, y=-1e308, width=0, height=-3),
    _field(x="12.5", y="abc", width=None, height=True),
    _field(x=33.333333333, y=66.666666667, width=66.666666667, height=33.333333333),
    _field(font_size=0, line_height=-1, letter_spacing=-10, rotation=400, opacity=7, background_opacity=-1),
    _field(kind="bogus", name="", shape="hexagon", align="justify", color="not-a-colour", font_weight="bold"),
    _field(shadow=Shadow(enabled="yes", blur=float("nan"), color="", offset_x=1e9, offset_y=-1e9)),
    _field(shadow=None, z_index=float("inf")),
]


@pytest.mark.parametrize("field", MALFORMED)
def test_normalize_is_idempotent(field):
    once = normalize_field(field)
    assert normalize_field(once) == once


@pytest.mark.parametrize("field", MALFORMED)
def test_normalized_fields_stay_inside_the_template(field):
    f = normalize_field(field)
    assert f.x >= 0 and f.y >= 0
    assert f.x + f.width <= 100
    assert f.y + f.height <= 100
    assert 1 <= f.width <= 100 and 1 <= f.height <= 100
    for value in (f.font_size, f.line_height, f.letter_spacing, f.rotation, f.opacity,
                  f.background_opacity, f.border_width, f.shadow.blur, f.shadow.offset_x):
        assert math.isfinite(value)


def test_non_finite_and_out_of_range_geometry_is_replaced():
    f = normalize_field(_field(x=float("nan"), y=-5, width=float("inf"), height=250))
    assert f.width == 20.0
    assert f.height == 100.0
    assert f.x == 0.0
    assert f.y == 0.0


def test_style_scalars_are_clamped_or_defaulted():
    f = normalize_field(MALFORMED[6])
    assert f.font_size == 16.0
    assert f.line_height == 1.2
    assert f.letter_spacing == -2.0
    assert f.rotation == 180.0
    assert f.opacity == 1.0
    assert f.background_opacity == 0.0


def test_unknown_enums_and_colours_fall_back_to_defaults():
    f = normalize_field(MALFORMED[7])
    assert f.kind == FieldKind.TEXT
    assert f.name == "Name"
    assert f.shape == FieldShape.RECTANGLE
    assert f.align == TextAlign.LEFT
    assert f.color == "#000000"
    assert f.font_weight == 400


def test_field_from_sparse_record_uses_defaults():
    f = field_from_record({"field_type": "photo"}, position=3)
    assert f.kind == FieldKind.PHOTO
    assert f.name == "Photo"
    assert (f.x, f.y, f.width, f.height) == (0.0, 0.0, 20.0, 5.0)
    assert f.font_family == "Inter"
    assert f.z_index == 3
    assert f.id


def test_font_bold_maps_to_weight():
    assert field_from_record({"font_bold": True}).font_weight == 700
    assert field_from_record({"font_bold": False}).font_weight == 400
    assert field_from_record({"font_bold": True, "font_weight": 500}).font_weight == 500


def test_record_round_trip_keeps_every_attribute():
    original = normalize_field(_field(
        x=12.5, y=40, width=30, height=10, shape=FieldShape.ROUNDED, font_family="Georgia",
        font_weight=700, italic=True, align=TextAlign.CENTER, color="#112233", letter_spacing=1.5,
        line_height=1.6, border_enabled=True, border_width=3, background_opacity=0.4, opacity=0.8,
        rotation=-15, shadow=Shadow(enabled=True, blur=6, color="#00000066", offset_x=2, offset_y=3),
        z_index=4,
    ))
    assert field_from_record(field_to_record(original)) == original


def test_pixel_rect_resolves_against_native_size():
    f = normalize_field(_field(x=10, y=20, width=50, height=25))
    assert pixel_rect(f, 1000, 400) == (100.0, 80.0, 500.0, 100.0)


def test_paint_order_is_stable_for_equal_z():
    a = _field(id="a", z_index=1)
    b = _field(id="b", z_index=0)
    c = _field(id="c", z_index=1)
    assert [f.id for f in paint_order([a, b, c])] == ["b", "a", "c"]


def test_with_changes_merges_shadow_and_renormalizes():
    f = normalize_field(_field(x=70, width=20))
    updated = with_changes(f, width=50, shadow={"enabled": True}, unknown="ignored")
    assert updated.width == 50
    assert updated.x == 50
    assert updated.shadow.enabled is True
    assert updated.shadow.blur == f.shadow.blur


def test_changes_from_record_translates_wire_names():
    changes = changes_from_record({
        "x_position": 5,
        "font_color": "#ff0000",
        "font_bold": True,
        "shadow_enabled": True,
        "shadow_blur": 3,
        "opacity": 0.5,
    })
    assert changes == {
        "x": 5,
        "color": "#ff0000",
        "font_weight": 700,
        "shadow": {"enabled": True, "blur": 3},
        "opacity": 0.5,
    }
