"""
Template field API routes.

Fields are read through the legacy migrator, so pixel-era records come back
as percentages; saving replaces the whole set.
"""
from typing import Any, Dict, List
from fastapi import APIRouter
from pydantic import BaseModel

from db import SessionLocal
from domain.models import Field
from repositories import FieldsRepository
from services.geometry import field_to_record
from services.legacy_migration import load_fields
from api.routes.projects import get_project_or_404

router = APIRouter()
fields_repo = FieldsRepository()


class FieldRecord(BaseModel):
    id: str
    field_type: str
    field_name: str
    x_position: float
    y_position: float
    width: float
    height: float
    shape: str
    font_family: str
    font_weight: int
    font_bold: bool
    font_size: float
    font_italic: bool
    text_align: str
    font_color: str
    letter_spacing: float
    line_height: float
    border_enabled: bool
    border_size: float
    border_color: str
    background_color: str
    background_opacity: float
    opacity: float
    rotation: float
    shadow_enabled: bool
    shadow_blur: float
    shadow_color: str
    shadow_offset_x: float
    shadow_offset_y: float
    z_index: int


def load_project_fields(session, project_id: str) -> List[Field]:
    """Stored fields for a project, migrated and normalized, in paint order."""
    return load_fields(fields_repo.list_fields(session, project_id))


@router.get("", response_model=List[FieldRecord])
async def list_fields(project_id: str):
    with SessionLocal() as session:
        get_project_or_404(session, project_id)
        return [field_to_record(f) for f in load_project_fields(session, project_id)]


@router.put("", response_model=List[FieldRecord])
async def save_fields(project_id: str, records: List[Dict[str, Any]]):
    """
    Replace every field of the project.

    Records may be partial or legacy; they are normalized before storage.
    """
    fields = load_fields(records)
    with SessionLocal() as session:
        get_project_or_404(session, project_id)
        fields_repo.replace_all(session, project_id, fields)
    return [field_to_record(f) for f in fields]
