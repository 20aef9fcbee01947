import pytest

from domain.models import Field, FieldKind
from services.layout_engine import EditorSession, new_field, snap

SURFACE = (800, 600)


def _session(**kwargs) -> EditorSession:
    fields = [
        Field(id="a", kind=FieldKind.TEXT, name="Name", x=10, y=10, width=20, height=10, z_index=0),
        Field(id="b", kind=FieldKind.PHOTO, name="Photo", x=50, y=50, width=20, height=20, z_index=1),
    ]
    return EditorSession(fields, **kwargs)


def test_new_field_uses_registered_defaults():
    photo = new_field(FieldKind.PHOTO)
    text = new_field(FieldKind.TEXT)
    assert (photo.width, photo.height, photo.name) == (15.0, 20.0, "Photo")
    assert (text.width, text.height, text.name) == (20.0, 5.0, "Name")
    assert photo.id != text.id


def test_snap_rounds_to_grid():
    assert snap(12.4, 5) == 10
    assert snap(12.6, 5) == 15
    assert snap(12.6, None) == 12.6


def test_drag_moves_by_pointer_offset():
    session = _session()
    assert session.begin_drag("a", (100, 80), SURFACE)
    moved = session.pointer_move((420, 320), SURFACE)
    assert moved.x == pytest.approx(50.0)
    assert moved.y == pytest.approx(50.0)
    assert moved.width == 20.0


def test_drag_snaps_to_grid():
    session = _session(grid_size=5)
    session.begin_drag("a", (100, 80), SURFACE)
    moved = session.pointer_move((423, 317), SURFACE)
    assert moved.x == pytest.approx(50.0)
    assert moved.y == pytest.approx(50.0)


def test_drag_is_clamped_inside_template():
    session = _session()
    session.begin_drag("a", (100, 80), SURFACE)
    moved = session.pointer_move((5000, -5000), SURFACE)
    assert moved.x == pytest.approx(80.0)
    assert moved.y == 0.0


def test_resize_keeps_top_left_and_clamps_to_one_percent():
    session = _session()
    assert session.begin_resize("a", (240, 120), SURFACE)
    resized = session.pointer_move((0, 0), SURFACE)
    assert (resized.x, resized.y) == (10.0, 10.0)
    assert resized.width == 1.0
    assert resized.height == 1.0


def test_resize_with_grid_has_larger_minimum():
    session = _session(grid_size=5)
    session.begin_resize("a", (240, 120), SURFACE)
    resized = session.pointer_move((81, 61), SURFACE)
    assert resized.width == 5.0
    assert resized.height == 5.0


def test_resize_cannot_grow_past_the_edge():
    session = _session()
    session.begin_resize("a", (240, 120), SURFACE)
    resized = session.pointer_move((10000, 10000), SURFACE)
    assert (resized.x, resized.y) == (10.0, 10.0)
    assert resized.x + resized.width <= 100
    assert resized.y + resized.height <= 100


def test_only_one_interaction_at_a_time():
    session = _session()
    assert session.begin_drag("a", (100, 80), SURFACE)
    assert not session.begin_resize("b", (560, 420), SURFACE)
    assert not session.begin_drag("b", (450, 350), SURFACE)
    assert session.active_mode == "drag"
    assert session.end_interaction()
    assert session.active_mode is None
    assert not session.end_interaction()


def test_gesture_records_single_history_entry():
    session = _session()
    before = len(session.history)
    session.begin_drag("a", (100, 80), SURFACE)
    for step in range(1, 6):
        session.pointer_move((100 + step * 10, 80 + step * 10), SURFACE)
    session.end_interaction()
    assert len(session.history) == before + 1
    session.undo()
    assert session.get("a").x == 10.0


def test_gesture_without_movement_records_nothing():
    session = _session()
    before = len(session.history)
    session.begin_drag("a", (100, 80), SURFACE)
    session.end_interaction()
    assert len(session.history) == before


def test_undo_redo_round_trip():
    session = _session()
    start = session.fields

    session.update_field("a", color="#ff0000", font_size=24)
    session.add_field(FieldKind.TEXT)
    session.duplicate("b")
    session.bring_to_front("a")
    end = session.fields

    for _ in range(4):
        assert session.undo()
    assert session.fields == start
    assert not session.undo()

    for _ in range(4):
        assert session.redo()
    assert session.fields == end
    assert not session.redo()


def test_undo_is_refused_mid_gesture():
    session = _session()
    session.update_field("a", x=30)
    session.begin_drag("a", (250, 80), SURFACE)
    assert not session.undo()
    session.end_interaction()
    assert session.undo()


def test_update_without_change_does_not_push_history():
    session = _session()
    before = len(session.history)
    session.update_field("a", x=10, width=20)
    assert len(session.history) == before
    assert session.update_field("missing", x=1) is None


def test_duplicate_offsets_and_goes_on_top():
    session = _session()
    clone = session.duplicate("a")
    source = session.get("a")
    assert clone.id != source.id
    assert (clone.x, clone.y) == (12.0, 12.0)
    assert clone.z_index == 2
    assert session.selected_id == clone.id


def test_z_order_changes():
    session = _session()
    session.bring_to_front("a")
    assert [f.id for f in session.fields] == ["b", "a"]
    session.send_to_back("a")
    assert session.get("a").z_index == 0
    assert [f.id for f in session.fields] == ["a", "b"]


def test_hit_test_prefers_topmost_field():
    session = _session()
    session.update_field("b", x=15, y=12)
    assert session.hit_test((200, 90), SURFACE).id == "b"
    session.send_to_back("b")
    assert session.hit_test((200, 90), SURFACE).id == "a"
    assert session.hit_test((790, 590), SURFACE) is None


def test_hit_test_breaks_z_ties_by_insertion_order():
    fields = [
        Field(id="first", kind=FieldKind.TEXT, name="A", x=0, y=0, width=50, height=50),
        Field(id="second", kind=FieldKind.TEXT, name="B", x=0, y=0, width=50, height=50),
    ]
    session = EditorSession(fields)
    assert session.hit_test((10, 10), SURFACE).id == "second"


def test_pointer_down_picks_drag_or_resize():
    session = _session()
    assert session.pointer_down((100, 80), SURFACE).id == "a"
    assert session.active_mode == "drag"
    session.end_interaction()

    # bottom-right corner of "a" is at (240, 120)
    session.pointer_down((236, 117), SURFACE)
    assert session.active_mode == "resize"
    session.end_interaction()

    assert session.pointer_down((780, 10), SURFACE) is None
    assert session.selected_id is None
    assert session.active_mode is None


def test_select_never_starts_interaction():
    session = _session()
    assert session.select("a")
    assert session.active_mode is None
    assert not session.select("missing")


def test_delete_clears_selection_and_can_be_undone():
    session = _session()
    session.select("a")
    assert session.delete_field("a")
    assert session.selected_id is None
    assert session.get("a") is None
    session.undo()
    assert session.get("a") is not None
