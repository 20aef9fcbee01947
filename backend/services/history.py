"""
Bounded undo/redo history for an editor session.

Holds immutable snapshots of the full field list plus a cursor. Pushing
after an undo drops the redo tail; once the limit is reached the oldest
snapshot falls off. Not persisted.
"""
import copy
import time
from typing import Callable, List, Optional, Sequence, Tuple

from domain.models import Field, HistoryState


class History:
    def __init__(self, limit: int = 50, clock: Callable[[], float] = time.time):
        self.limit = max(1, int(limit))
        self._clock = clock
        self._states: List[HistoryState] = []
        self._cursor = -1

    def _snapshot(self, fields: Sequence[Field]) -> HistoryState:
        return HistoryState(fields=tuple(copy.deepcopy(list(fields))), timestamp=self._clock())

    def reset(self, fields: Sequence[Field]) -> None:
        """Start over with `fields` as the only (oldest) state."""
        self._states = [self._snapshot(fields)]
        self._cursor = 0

    def push(self, fields: Sequence[Field]) -> None:
        del self._states[self._cursor + 1:]
        self._states.append(self._snapshot(fields))
        if len(self._states) > self.limit:
            del self._states[: len(self._states) - self.limit]
        self._cursor = len(self._states) - 1

    @property
    def current(self) -> Optional[HistoryState]:
        if self._cursor < 0:
            return None
        return self._states[self._cursor]

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._cursor < len(self._states) - 1

    def __len__(self) -> int:
        return len(self._states)

    def undo(self) -> Optional[Tuple[Field, ...]]:
        """Step back one state. Returns a copy of its fields, or None at the start."""
        if not self.can_undo:
            return None
        self._cursor -= 1
        return copy.deepcopy(self._states[self._cursor].fields)

    def redo(self) -> Optional[Tuple[Field, ...]]:
        """Step forward one state. Returns a copy of its fields, or None at the end."""
        if not self.can_redo:
            return None
        self._cursor += 1
        return copy.deepcopy(self._states[self._cursor].fields)
