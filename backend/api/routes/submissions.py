"""
Submission API routes.

The public form for a project and the endpoint that turns a participant's
values and photo into a generated card.
"""
import asyncio
import json
import logging
import uuid
from typing import Dict, List, Optional, Set
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from db import SessionLocal
from domain.models import FieldKind, Submission
from repositories import SubmissionsRepository
from services.card_generation import (
    CardGenerationError,
    CardGenerator,
    StaleRenderError,
    SubmissionError,
    participant_name_from,
    requires_watermark,
    validate_submission,
)
from services.compositor import WATERMARK_SPEC
from services.fonts import fonts_for_fields, get_default_gate
from services.image_formats import storable_upload
from settings import settings
from storage.file_storage import FileStorage, project_photos_folder
from api.routes.fields import load_project_fields
from api.routes.projects import get_active_project_or_404, get_project_or_404

router = APIRouter()
submissions_repo = SubmissionsRepository()
storage = FileStorage()
generator = CardGenerator(storage)
logger = logging.getLogger(__name__)

# Keep references so warm-up tasks are not garbage collected mid-flight
_warming: Set["asyncio.Task[bool]"] = set()


class FormFieldResponse(BaseModel):
    name: str
    kind: str


class FormResponse(BaseModel):
    project_id: str
    name: str
    template_image_url: Optional[str] = None
    fields: List[FormFieldResponse]
    photo_required: bool
    fonts_ready: bool


class SubmissionResponse(BaseModel):
    id: str
    project_id: str
    participant_name: str
    field_values: Dict[str, str]
    photo_url: Optional[str] = None
    generated_card_url: Optional[str] = None
    created_at: str


def submission_to_response(submission: Submission) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        project_id=submission.project_id,
        participant_name=submission.participant_name,
        field_values=submission.field_values,
        photo_url=submission.photo_url,
        generated_card_url=submission.generated_card_url,
        created_at=submission.created_at.isoformat(),
    )


def _warm_fonts(specs, sample_text: str = "") -> None:
    task = get_default_gate().warm(specs, sample_text)
    _warming.add(task)
    task.add_done_callback(_warming.discard)


def _gated_specs(project, fields):
    """Faces the card will be drawn with, including the watermark face when it applies."""
    specs = fonts_for_fields(fields)
    if requires_watermark(project) and WATERMARK_SPEC not in specs:
        specs.append(WATERMARK_SPEC)
    return specs


def _parse_values(raw: str) -> Dict[str, str]:
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="values must be a JSON object")
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=400, detail="values must be a JSON object")
    return {str(k): "" if v is None else str(v) for k, v in parsed.items()}


@router.get("/{project_id}/form", response_model=FormResponse)
async def get_form(project_id: str):
    """Describe the submission form and start loading the template's fonts."""
    with SessionLocal() as session:
        project = get_active_project_or_404(session, project_id)
        fields = load_project_fields(session, project_id)

    specs = _gated_specs(project, fields)
    fonts_ready = get_default_gate().is_ready(specs)
    if not fonts_ready:
        _warm_fonts(specs)
    return FormResponse(
        project_id=project.id,
        name=project.name,
        template_image_url=project.template_image_url,
        fields=[FormFieldResponse(name=f.name, kind=f.kind.value) for f in fields],
        photo_required=any(f.kind == FieldKind.PHOTO for f in fields),
        fonts_ready=fonts_ready,
    )


@router.post("/{project_id}/submissions", response_model=SubmissionResponse, status_code=201)
async def create_submission(
    project_id: str,
    values: str = Form("{}"),
    photo: Optional[UploadFile] = File(None),
    client_key: Optional[str] = Form(None),
):
    """
    Validate a submission, generate its card and store both.

    Refused with 409 while the template's fonts are still loading; the
    client retries once the form reports `fonts_ready`.
    """
    with SessionLocal() as session:
        project = get_active_project_or_404(session, project_id)
        fields = load_project_fields(session, project_id)

    field_values = _parse_values(values)
    photo_bytes = await photo.read() if photo is not None else None
    if photo_bytes is not None and len(photo_bytes) > settings.MAX_PHOTO_BYTES:
        raise HTTPException(status_code=413, detail="Photo is larger than the upload limit")

    try:
        validate_submission(fields, field_values, has_photo=bool(photo_bytes))
    except SubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    specs = _gated_specs(project, fields)
    sample_text = "".join(field_values.values())
    if not get_default_gate().is_ready(specs, sample_text):
        _warm_fonts(specs, sample_text)
        raise HTTPException(status_code=409, detail="Fonts are still loading, please retry shortly")

    try:
        card_url = await generator.generate(
            project,
            fields,
            field_values,
            photo_bytes=photo_bytes,
            request_key=client_key or str(uuid.uuid4()),
        )
    except StaleRenderError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except CardGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    photo_url = None
    if photo_bytes:
        stored, content_type = storable_upload(photo_bytes, photo.filename, photo.content_type, "image/jpeg")
        try:
            photo_url = storage.upload(stored, content_type, project_photos_folder(project_id))
        except OSError:
            logger.error("Could not store photo for project %s", project_id, exc_info=True)
            storage.delete_file(card_url)
            raise HTTPException(status_code=502, detail="could not store photo")

    submission = Submission(
        id=Submission.generate_id(),
        project_id=project_id,
        participant_name=participant_name_from(fields, field_values),
        field_values=field_values,
        photo_url=photo_url,
        generated_card_url=card_url,
    )
    with SessionLocal() as session:
        created = submissions_repo.create_submission(session, submission)
    logger.info("Submission %s for project %s -> %s", created.id, project_id, card_url)
    return submission_to_response(created)


@router.get("/{project_id}/submissions", response_model=List[SubmissionResponse])
async def list_submissions(project_id: str):
    with SessionLocal() as session:
        get_project_or_404(session, project_id)
        return [submission_to_response(s) for s in submissions_repo.list_submissions(session, project_id)]


@router.delete("/{project_id}/submissions/{submission_id}")
async def delete_submission(project_id: str, submission_id: str):
    """Delete a submission along with its stored card and photo."""
    with SessionLocal() as session:
        get_project_or_404(session, project_id)
        submission = submissions_repo.get_submission(session, submission_id)
        if submission is None or submission.project_id != project_id:
            raise HTTPException(status_code=404, detail="Submission not found")
        submissions_repo.delete_submission(session, submission_id)
    for url in (submission.generated_card_url, submission.photo_url):
        if url:
            storage.delete_file(url)
    return {"deleted": True, "submission_id": submission_id}
