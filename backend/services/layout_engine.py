"""
Interactive layout engine.

Turns pointer input into field mutations for a single editor session:
drag, resize, optional grid snap, z-order changes, duplication, and a
bounded undo/redo history.

Pointer positions and surface sizes are in pixels of whatever surface the
editor is drawn on; fields are stored in percentages, so the same session
works at any display size. Only one drag or resize can be active at a time.
Uses a registry pattern for the defaults of newly added fields.
"""
import copy
import dataclasses
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from domain.models import Field, FieldKind, FieldShape
from services.geometry import (
    MIN_SIZE_PCT,
    MAX_PCT,
    contains_point,
    field_to_record,
    normalize_field,
    paint_order,
    with_changes,
)
from services.history import History
from settings import settings


Point = Tuple[float, float]
Size = Tuple[float, float]

# Type alias for default-field factories
FieldFactory = Callable[[], Field]

DUPLICATE_OFFSET_PCT = 2.0
MIN_SNAPPED_SIZE_PCT = 5.0
RESIZE_HANDLE_PX = 10.0


# Registry of new-field defaults by kind
_defaults_registry: Dict[FieldKind, FieldFactory] = {}


def register_field_defaults(kind: FieldKind):
    """Decorator to register the factory used when adding a field of `kind`."""
    def decorator(func: FieldFactory) -> FieldFactory:
        _defaults_registry[kind] = func
        return func
    return decorator


def new_field(kind: FieldKind) -> Field:
    """
    Create a new field of the given kind with its registered defaults.

    Raises:
        ValueError: If no defaults are registered for the kind
    """
    factory = _defaults_registry.get(kind)
    if not factory:
        raise ValueError(f"No defaults registered for field kind: {kind}")
    return normalize_field(factory())


@register_field_defaults(FieldKind.PHOTO)
def _photo_defaults() -> Field:
    return Field(
        id=Field.generate_id(),
        kind=FieldKind.PHOTO,
        name="Photo",
        x=10.0,
        y=10.0,
        width=15.0,
        height=20.0,
        shape=FieldShape.RECTANGLE,
    )


@register_field_defaults(FieldKind.TEXT)
def _text_defaults() -> Field:
    return Field(
        id=Field.generate_id(),
        kind=FieldKind.TEXT,
        name="Name",
        x=10.0,
        y=10.0,
        width=20.0,
        height=5.0,
    )


def snap(value: float, grid_size: Optional[float]) -> float:
    if not grid_size or grid_size <= 0:
        return value
    return round(value / grid_size) * grid_size


@dataclass
class _Interaction:
    mode: str  # "drag" | "resize"
    field_id: str
    # drag: pointer-to-origin offset in surface pixels; resize: fixed top-left in percent
    anchor: Point
    before: Tuple[Field, ...]


class EditorSession:
    """
    In-memory editing state for one template.

    Owns the field list, the current selection, the active drag/resize (if
    any) and the undo history. Nothing outside the session mutates these.
    """

    def __init__(
        self,
        fields: Iterable[Field] = (),
        grid_size: Optional[float] = None,
        history_limit: int = settings.HISTORY_LIMIT,
    ):
        self._fields: List[Field] = [normalize_field(f) for f in fields]
        self.grid_size = grid_size
        self.selected_id: Optional[str] = None
        self._interaction: Optional[_Interaction] = None
        self.history = History(limit=history_limit)
        self.history.reset(self._fields)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def fields(self) -> List[Field]:
        """Copy of the fields in paint order."""
        return copy.deepcopy(paint_order(self._fields))

    @property
    def active_mode(self) -> Optional[str]:
        return self._interaction.mode if self._interaction else None

    def get(self, field_id: str) -> Optional[Field]:
        for f in self._fields:
            if f.id == field_id:
                return f
        return None

    def to_records(self) -> List[dict]:
        return [field_to_record(f) for f in paint_order(self._fields)]

    def hit_test(self, pointer: Point, surface: Size) -> Optional[Field]:
        """Topmost field under the pointer; highest z_index wins, later insertion breaks ties."""
        if surface[0] <= 0 or surface[1] <= 0:
            return None
        x_pct = pointer[0] / surface[0] * 100.0
        y_pct = pointer[1] / surface[1] * 100.0
        for f in reversed(paint_order(self._fields)):
            if contains_point(f, x_pct, y_pct):
                return f
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index(self, field_id: str) -> int:
        for i, f in enumerate(self._fields):
            if f.id == field_id:
                return i
        return -1

    def _replace(self, updated: Field) -> None:
        idx = self._index(updated.id)
        if idx >= 0:
            self._fields[idx] = updated

    def _commit(self) -> None:
        self.history.push(self._fields)

    def _z_bounds(self) -> Tuple[int, int]:
        if not self._fields:
            return (0, 0)
        zs = [f.z_index for f in self._fields]
        return (min(zs), max(zs))

    # ------------------------------------------------------------------
    # Discrete edits (each pushes one history entry)
    # ------------------------------------------------------------------

    def select(self, field_id: Optional[str]) -> bool:
        """Change selection only; never starts a drag or resize."""
        if field_id is not None and self._index(field_id) < 0:
            return False
        self.selected_id = field_id
        return True

    def set_grid(self, grid_size: Optional[float]) -> None:
        self.grid_size = grid_size if grid_size and grid_size > 0 else None

    def add_field(self, kind: FieldKind) -> Field:
        created = new_field(kind)
        if self._fields:
            created = dataclasses.replace(created, z_index=self._z_bounds()[1] + 1)
        self._fields.append(created)
        self.selected_id = created.id
        self._commit()
        return created

    def update_field(self, field_id: str, **changes) -> Optional[Field]:
        current = self.get(field_id)
        if current is None:
            return None
        updated = with_changes(current, **{k: v for k, v in changes.items() if k != "id"})
        if updated != current:
            self._replace(updated)
            self._commit()
        return updated

    def delete_field(self, field_id: str) -> bool:
        idx = self._index(field_id)
        if idx < 0:
            return False
        if self._interaction and self._interaction.field_id == field_id:
            self._interaction = None
        del self._fields[idx]
        if self.selected_id == field_id:
            self.selected_id = None
        self._commit()
        return True

    def duplicate(self, field_id: str) -> Optional[Field]:
        source = self.get(field_id)
        if source is None:
            return None
        clone = normalize_field(dataclasses.replace(
            copy.deepcopy(source),
            id=Field.generate_id(),
            x=source.x + DUPLICATE_OFFSET_PCT,
            y=source.y + DUPLICATE_OFFSET_PCT,
            z_index=self._z_bounds()[1] + 1,
        ))
        self._fields.append(clone)
        self.selected_id = clone.id
        self._commit()
        return clone

    def bring_to_front(self, field_id: str) -> bool:
        current = self.get(field_id)
        if current is None:
            return False
        self._replace(dataclasses.replace(current, z_index=self._z_bounds()[1] + 1))
        self._commit()
        return True

    def send_to_back(self, field_id: str) -> bool:
        current = self.get(field_id)
        if current is None:
            return False
        self._replace(dataclasses.replace(current, z_index=self._z_bounds()[0] - 1))
        self._commit()
        return True

    def undo(self) -> bool:
        if self._interaction:
            return False
        restored = self.history.undo()
        if restored is None:
            return False
        self._restore(restored)
        return True

    def redo(self) -> bool:
        if self._interaction:
            return False
        restored = self.history.redo()
        if restored is None:
            return False
        self._restore(restored)
        return True

    def _restore(self, fields: Tuple[Field, ...]) -> None:
        self._fields = list(fields)
        if self.selected_id is not None and self._index(self.selected_id) < 0:
            self.selected_id = None

    # ------------------------------------------------------------------
    # Pointer interactions (one history entry per completed gesture)
    # ------------------------------------------------------------------

    def begin_drag(self, field_id: str, pointer: Point, surface: Size) -> bool:
        """Start dragging. A no-op (False) while another drag/resize is active."""
        if self._interaction is not None:
            return False
        current = self.get(field_id)
        if current is None or surface[0] <= 0 or surface[1] <= 0:
            return False
        origin_x = current.x / 100.0 * surface[0]
        origin_y = current.y / 100.0 * surface[1]
        self._interaction = _Interaction(
            mode="drag",
            field_id=field_id,
            anchor=(pointer[0] - origin_x, pointer[1] - origin_y),
            before=tuple(copy.deepcopy(self._fields)),
        )
        self.selected_id = field_id
        return True

    def begin_resize(self, field_id: str, pointer: Point, surface: Size) -> bool:
        """Start resizing from the bottom-right corner; the top-left stays put."""
        if self._interaction is not None:
            return False
        current = self.get(field_id)
        if current is None or surface[0] <= 0 or surface[1] <= 0:
            return False
        self._interaction = _Interaction(
            mode="resize",
            field_id=field_id,
            anchor=(current.x, current.y),
            before=tuple(copy.deepcopy(self._fields)),
        )
        self.selected_id = field_id
        return True

    def pointer_down(self, pointer: Point, surface: Size, field_id: Optional[str] = None) -> Optional[Field]:
        """
        Press on the surface: select the field under the pointer (or
        `field_id`) and start a resize when the press lands on its
        bottom-right handle, a drag otherwise. Pressing on empty space clears
        the selection.
        """
        target = self.get(field_id) if field_id else self.hit_test(pointer, surface)
        if target is None:
            self.select(None)
            return None
        right_px = target.right / 100.0 * surface[0]
        bottom_px = target.bottom / 100.0 * surface[1]
        on_handle = (
            abs(pointer[0] - right_px) <= RESIZE_HANDLE_PX
            and abs(pointer[1] - bottom_px) <= RESIZE_HANDLE_PX
        )
        if on_handle:
            self.begin_resize(target.id, pointer, surface)
        else:
            self.begin_drag(target.id, pointer, surface)
        self.select(target.id)
        return target

    def pointer_move(self, pointer: Point, surface: Size) -> Optional[Field]:
        """Apply one pointer frame to the active interaction. No history entry."""
        interaction = self._interaction
        if interaction is None or surface[0] <= 0 or surface[1] <= 0:
            return None
        current = self.get(interaction.field_id)
        if current is None:
            self._interaction = None
            return None

        if interaction.mode == "drag":
            x = (pointer[0] - interaction.anchor[0]) / surface[0] * 100.0
            y = (pointer[1] - interaction.anchor[1]) / surface[1] * 100.0
            updated = with_changes(current, x=snap(x, self.grid_size), y=snap(y, self.grid_size))
        else:
            anchor_x, anchor_y = interaction.anchor
            width = pointer[0] / surface[0] * 100.0 - anchor_x
            height = pointer[1] / surface[1] * 100.0 - anchor_y
            minimum = MIN_SNAPPED_SIZE_PCT if self.grid_size else MIN_SIZE_PCT
            width = min(MAX_PCT - anchor_x, max(minimum, snap(width, self.grid_size)))
            height = min(MAX_PCT - anchor_y, max(minimum, snap(height, self.grid_size)))
            updated = with_changes(current, x=anchor_x, y=anchor_y, width=width, height=height)

        self._replace(updated)
        return updated

    def end_interaction(self) -> bool:
        """Finish the active drag/resize, recording a single history entry if anything moved."""
        interaction = self._interaction
        if interaction is None:
            return False
        self._interaction = None
        if tuple(self._fields) != interaction.before:
            self._commit()
        return True
