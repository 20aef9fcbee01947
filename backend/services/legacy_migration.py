"""
Legacy coordinate migration.

Older templates stored field geometry in absolute editor pixels. A record is
treated as legacy when any of x/y/width/height exceeds 100. Those records
are converted against a fixed 800x600 reference canvas, which is a
best-effort guess: the editor viewport they were authored in was never
recorded. Migration happens on load only; nothing is written back until the
operator saves the template again.
"""
import logging
from typing import Any, Dict, Iterable, List

from domain.models import Field
from services.geometry import clamp, field_from_record, finite_or, paint_order

logger = logging.getLogger(__name__)

REFERENCE_WIDTH_PX = 800.0
REFERENCE_HEIGHT_PX = 600.0
MAX_MIGRATED_POSITION = 90.0
MIN_MIGRATED_SIZE = 5.0
MAX_MIGRATED_SIZE = 50.0

_GEOMETRY_KEYS = ("x_position", "y_position", "width", "height")


def is_legacy_record(record: Dict[str, Any]) -> bool:
    """True when any geometry value is above 100 (pixels, not percentages)."""
    return any(finite_or(record.get(key), 0.0) > 100.0 for key in _GEOMETRY_KEYS)


def migrate_legacy_record(record: Dict[str, Any], position: int = 0) -> Field:
    """Convert a pixel-based record to a normalized percentage Field."""
    x = finite_or(record.get("x_position"), 0.0)
    y = finite_or(record.get("y_position"), 0.0)
    width = finite_or(record.get("width"), 0.0)
    height = finite_or(record.get("height"), 0.0)

    converted = dict(record)
    converted["x_position"] = min(MAX_MIGRATED_POSITION, x * 100.0 / REFERENCE_WIDTH_PX)
    converted["y_position"] = min(MAX_MIGRATED_POSITION, y * 100.0 / REFERENCE_HEIGHT_PX)
    converted["width"] = clamp(width * 100.0 / REFERENCE_WIDTH_PX, MIN_MIGRATED_SIZE, MAX_MIGRATED_SIZE)
    converted["height"] = clamp(height * 100.0 / REFERENCE_HEIGHT_PX, MIN_MIGRATED_SIZE, MAX_MIGRATED_SIZE)
    return field_from_record(converted, position=position)


def load_fields(records: Iterable[Dict[str, Any]]) -> List[Field]:
    """
    Turn persisted records into normalized fields in paint order.

    Legacy records are migrated transparently; everything else is only
    normalized.
    """
    fields: List[Field] = []
    migrated = 0
    for position, record in enumerate(records):
        if is_legacy_record(record):
            fields.append(migrate_legacy_record(record, position=position))
            migrated += 1
        else:
            fields.append(field_from_record(record, position=position))
    if migrated:
        logger.info("[migration] converted %s legacy pixel field(s) to percentages", migrated)
    return paint_order(fields)
