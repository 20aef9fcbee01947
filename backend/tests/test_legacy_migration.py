import logging

from services.legacy_migration import is_legacy_record, load_fields, migrate_legacy_record


def test_pixel_record_migrates_to_exact_percentages():
    record = {"field_type": "text", "field_name": "Name", "x_position": 400, "y_position": 300, "width": 160, "height": 120}
    assert is_legacy_record(record)
    f = migrate_legacy_record(record)
    assert (f.x, f.y, f.width, f.height) == (50.0, 50.0, 20.0, 20.0)


def test_percentage_records_are_not_migrated():
    record = {"x_position": 10, "y_position": 100, "width": 20, "height": 5}
    assert not is_legacy_record(record)
    f = load_fields([record])[0]
    assert (f.x, f.width, f.height) == (10.0, 20.0, 5.0)
    assert f.y == 95.0


def test_migrated_values_are_capped():
    f = migrate_legacy_record({"x_position": 5000, "y_position": 5000, "width": 10, "height": 5000})
    assert f.x == 90.0
    assert f.width == 5.0
    assert f.height == 50.0
    assert f.y == 50.0
    assert f.x + f.width <= 100 and f.y + f.height <= 100


def test_malformed_legacy_values_do_not_crash():
    f = migrate_legacy_record({"x_position": "oops", "y_position": None, "width": 1600, "height": float("nan")})
    assert f.x == 0.0 and f.y == 0.0
    assert f.width == 50.0
    assert f.height == 5.0


def test_load_fields_mixes_and_orders_records(caplog):
    caplog.set_level(logging.INFO, logger="services.legacy_migration")
    records = [
        {"id": "top", "x_position": 10, "y_position": 10, "width": 20, "height": 5, "z_index": 5},
        {"id": "legacy", "x_position": 400, "y_position": 300, "width": 160, "height": 120},
        {"id": "bottom", "x_position": 1, "y_position": 1, "width": 5, "height": 5, "z_index": 0},
    ]
    fields = load_fields(records)
    assert [f.id for f in fields] == ["bottom", "legacy", "top"]
    assert fields[1].x == 50.0
    assert "converted 1 legacy pixel field(s)" in caplog.text
