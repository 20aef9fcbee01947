"""
Editor session API routes.

An editor session holds the in-progress field list for one project in
memory: pointer gestures, edits and undo/redo act on it, and nothing reaches
the database until `save`. Sessions are per process, are lost on restart,
and are dropped after EDITOR_IDLE_TIMEOUT_SEC without requests.
"""
import logging
import threading
import time
import uuid
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from db import SessionLocal
from domain.models import FieldKind
from repositories import FieldsRepository
from services.geometry import changes_from_record
from services.layout_engine import EditorSession
from settings import settings
from api.routes.fields import FieldRecord, load_project_fields
from api.routes.projects import get_project_or_404

router = APIRouter()
fields_repo = FieldsRepository()
logger = logging.getLogger(__name__)

# Monotonic clock for idle expiry
_clock = time.monotonic

_sessions: Dict[str, "OpenSession"] = {}
_sessions_lock = threading.Lock()


class OpenSession:
    def __init__(self, session_id: str, project_id: str, editor: EditorSession):
        self.session_id = session_id
        self.project_id = project_id
        self.editor = editor
        self.lock = threading.Lock()
        self.last_used = _clock()


class OpenEditorRequest(BaseModel):
    snap_to_grid: bool = False
    grid_size: Optional[float] = None


class EditorStateResponse(BaseModel):
    session_id: str
    project_id: str
    fields: List[FieldRecord]
    selected_id: Optional[str] = None
    active_mode: Optional[str] = None
    grid_size: Optional[float] = None
    can_undo: bool
    can_redo: bool


class PointerEvent(BaseModel):
    x: float
    y: float
    surface_width: float
    surface_height: float
    field_id: Optional[str] = None


class AddFieldRequest(BaseModel):
    kind: str = FieldKind.TEXT.value


class GridRequest(BaseModel):
    grid_size: Optional[float] = None


def _state(open_session: OpenSession) -> EditorStateResponse:
    editor = open_session.editor
    return EditorStateResponse(
        session_id=open_session.session_id,
        project_id=open_session.project_id,
        fields=editor.to_records(),
        selected_id=editor.selected_id,
        active_mode=editor.active_mode,
        grid_size=editor.grid_size,
        can_undo=editor.history.can_undo,
        can_redo=editor.history.can_redo,
    )


def _expire_idle_sessions(now: float) -> None:
    """Drop sessions nobody has touched for EDITOR_IDLE_TIMEOUT_SEC. Caller holds the lock."""
    cutoff = now - settings.EDITOR_IDLE_TIMEOUT_SEC
    for session_id in [sid for sid, s in _sessions.items() if s.last_used < cutoff]:
        del _sessions[session_id]
        logger.info("Closed idle editor %s", session_id)


def _get_session(session_id: str) -> OpenSession:
    now = _clock()
    with _sessions_lock:
        _expire_idle_sessions(now)
        open_session = _sessions.get(session_id)
        if open_session is not None:
            open_session.last_used = now
    if open_session is None:
        raise HTTPException(status_code=404, detail="Editor session not found")
    return open_session


@router.post("/projects/{project_id}/editor", response_model=EditorStateResponse, status_code=201)
async def open_editor(project_id: str, data: Optional[OpenEditorRequest] = None):
    """Open an editor session seeded with the project's saved fields."""
    data = data or OpenEditorRequest()
    with SessionLocal() as session:
        get_project_or_404(session, project_id)
        fields = load_project_fields(session, project_id)

    grid = data.grid_size if data.grid_size else (settings.SNAP_GRID_SIZE if data.snap_to_grid else None)
    editor = EditorSession(fields, grid_size=grid)
    open_session = OpenSession(session_id=str(uuid.uuid4()), project_id=project_id, editor=editor)
    with _sessions_lock:
        _expire_idle_sessions(_clock())
        _sessions[open_session.session_id] = open_session
    logger.info("Opened editor %s for project %s with %s field(s)", open_session.session_id, project_id, len(fields))
    return _state(open_session)


@router.get("/editor/{session_id}", response_model=EditorStateResponse)
async def get_editor(session_id: str):
    return _state(_get_session(session_id))


@router.delete("/editor/{session_id}")
async def close_editor(session_id: str):
    with _sessions_lock:
        removed = _sessions.pop(session_id, None)
    if removed is None:
        raise HTTPException(status_code=404, detail="Editor session not found")
    return {"closed": True, "session_id": session_id}


# ============================================
# Pointer gestures
# ============================================

@router.post("/editor/{session_id}/pointer-down", response_model=EditorStateResponse)
async def pointer_down(session_id: str, event: PointerEvent):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.pointer_down(
            (event.x, event.y), (event.surface_width, event.surface_height), field_id=event.field_id
        )
        return _state(open_session)


@router.post("/editor/{session_id}/pointer-move", response_model=EditorStateResponse)
async def pointer_move(session_id: str, event: PointerEvent):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.pointer_move((event.x, event.y), (event.surface_width, event.surface_height))
        return _state(open_session)


@router.post("/editor/{session_id}/pointer-up", response_model=EditorStateResponse)
async def pointer_up(session_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.end_interaction()
        return _state(open_session)


# ============================================
# Field edits
# ============================================

@router.post("/editor/{session_id}/fields", response_model=EditorStateResponse)
async def add_field(session_id: str, data: AddFieldRequest):
    try:
        kind = FieldKind(data.kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid field kind: {data.kind}")
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.add_field(kind)
        return _state(open_session)


@router.patch("/editor/{session_id}/fields/{field_id}", response_model=EditorStateResponse)
async def update_field(session_id: str, field_id: str, changes: Dict[str, Any]):
    """Apply a partial record (wire or attribute names); values are normalized."""
    open_session = _get_session(session_id)
    with open_session.lock:
        if open_session.editor.update_field(field_id, **changes_from_record(changes)) is None:
            raise HTTPException(status_code=404, detail="Field not found")
        return _state(open_session)


@router.delete("/editor/{session_id}/fields/{field_id}", response_model=EditorStateResponse)
async def delete_field(session_id: str, field_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        if not open_session.editor.delete_field(field_id):
            raise HTTPException(status_code=404, detail="Field not found")
        return _state(open_session)


@router.post("/editor/{session_id}/fields/{field_id}/duplicate", response_model=EditorStateResponse)
async def duplicate_field(session_id: str, field_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        if open_session.editor.duplicate(field_id) is None:
            raise HTTPException(status_code=404, detail="Field not found")
        return _state(open_session)


@router.post("/editor/{session_id}/fields/{field_id}/bring-to-front", response_model=EditorStateResponse)
async def bring_to_front(session_id: str, field_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        if not open_session.editor.bring_to_front(field_id):
            raise HTTPException(status_code=404, detail="Field not found")
        return _state(open_session)


@router.post("/editor/{session_id}/fields/{field_id}/send-to-back", response_model=EditorStateResponse)
async def send_to_back(session_id: str, field_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        if not open_session.editor.send_to_back(field_id):
            raise HTTPException(status_code=404, detail="Field not found")
        return _state(open_session)


# ============================================
# History, grid, save
# ============================================

@router.post("/editor/{session_id}/undo", response_model=EditorStateResponse)
async def undo(session_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.undo()
        return _state(open_session)


@router.post("/editor/{session_id}/redo", response_model=EditorStateResponse)
async def redo(session_id: str):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.redo()
        return _state(open_session)


@router.put("/editor/{session_id}/grid", response_model=EditorStateResponse)
async def set_grid(session_id: str, data: GridRequest):
    open_session = _get_session(session_id)
    with open_session.lock:
        open_session.editor.set_grid(data.grid_size)
        return _state(open_session)


@router.post("/editor/{session_id}/save", response_model=EditorStateResponse)
async def save(session_id: str):
    """Persist the session's fields, replacing what the project had."""
    open_session = _get_session(session_id)
    with open_session.lock:
        fields = open_session.editor.fields
        with SessionLocal() as session:
            get_project_or_404(session, open_session.project_id)
            count = fields_repo.replace_all(session, open_session.project_id, fields)
        logger.info("Saved %s field(s) for project %s", count, open_session.project_id)
        return _state(open_session)
