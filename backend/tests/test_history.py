from domain.models import Field, FieldKind
from services.history import History


def _fields(*xs):
    return [Field(id=f"f{i}", kind=FieldKind.TEXT, name="Name", x=x) for i, x in enumerate(xs)]


def test_undo_redo_walk_the_cursor():
    history = History(limit=10, clock=lambda: 1.0)
    history.reset(_fields(1))
    history.push(_fields(2))
    history.push(_fields(3))

    assert history.undo()[0].x == 2
    assert history.undo()[0].x == 1
    assert history.undo() is None
    assert history.redo()[0].x == 2
    assert history.redo()[0].x == 3
    assert history.redo() is None


def test_push_after_undo_drops_redo_tail():
    history = History()
    history.reset(_fields(1))
    history.push(_fields(2))
    history.undo()
    history.push(_fields(5))
    assert not history.can_redo
    assert len(history) == 2
    assert history.current.fields[0].x == 5


def test_oldest_state_is_dropped_at_limit():
    history = History(limit=3)
    history.reset(_fields(0))
    for x in range(1, 6):
        history.push(_fields(x))
    assert len(history) == 3
    restored = None
    while history.can_undo:
        restored = history.undo()
    assert restored[0].x == 3


def test_snapshots_are_isolated_from_later_mutation():
    fields = _fields(1)
    history = History()
    history.reset(fields)
    fields[0].x = 99
    history.push(fields)
    assert history.undo()[0].x == 1
    assert history.current.timestamp > 0
