"""
Projects API routes.

A project is a template background plus its fields.
"""
import dataclasses
import logging
from typing import List, Optional
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from db import SessionLocal
from domain.models import OwnerTier, Project
from repositories import ProjectsRepository
from services.compositor import CompositionError, decode_image
from services.image_formats import storable_upload
from storage.file_storage import FileStorage, TEMPLATES_FOLDER

router = APIRouter()
projects_repo = ProjectsRepository()
storage = FileStorage()
logger = logging.getLogger(__name__)

PROJECT_STATUSES = ("active", "inactive")


class ProjectResponse(BaseModel):
    id: str
    name: str
    template_image_url: Optional[str] = None
    template_width: Optional[int] = None
    template_height: Optional[int] = None
    owner_tier: str
    status: str
    created_at: str


def project_to_response(project: Project) -> ProjectResponse:
    """Convert domain Project to API response."""
    return ProjectResponse(
        id=project.id,
        name=project.name,
        template_image_url=project.template_image_url,
        template_width=project.template_width,
        template_height=project.template_height,
        owner_tier=project.owner_tier.value,
        status=project.status,
        created_at=project.created_at.isoformat(),
    )


def get_project_or_404(session, project_id: str) -> Project:
    project = projects_repo.get_project(session, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def get_active_project_or_404(session, project_id: str) -> Project:
    """Participants only see active projects."""
    project = projects_repo.get_project(session, project_id)
    if not project or project.status != "active":
        raise HTTPException(status_code=404, detail="Project not found or inactive")
    return project


@router.get("", response_model=List[ProjectResponse])
async def list_projects():
    with SessionLocal() as session:
        return [project_to_response(p) for p in projects_repo.list_projects(session)]


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    name: str = Form(...),
    owner_tier: str = Form(OwnerTier.FREE.value),
    template: UploadFile = File(...),
):
    """Create a project from an uploaded template image."""
    if not name.strip():
        raise HTTPException(status_code=400, detail="Project name is required")
    try:
        tier = OwnerTier(owner_tier)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid owner tier: {owner_tier}")

    data = await template.read()
    try:
        image = decode_image(data, "template")
    except CompositionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    stored, content_type = storable_upload(data, template.filename, template.content_type, "image/png")
    url = storage.upload(stored, content_type, TEMPLATES_FOLDER)
    project = Project(
        id=Project.generate_id(),
        name=name.strip(),
        template_image_url=url,
        template_width=image.width,
        template_height=image.height,
        owner_tier=tier,
    )
    with SessionLocal() as session:
        created = projects_repo.create_project(session, project)
    logger.info("Created project %s (%sx%s)", created.id, image.width, image.height)
    return project_to_response(created)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: str):
    with SessionLocal() as session:
        return project_to_response(get_project_or_404(session, project_id))


@router.delete("/{project_id}")
async def delete_project(project_id: str):
    """Delete a project with its fields, submissions and stored files."""
    with SessionLocal() as session:
        project = get_project_or_404(session, project_id)
        projects_repo.delete_project(session, project_id)
    storage.delete_project_files(project_id)
    if project.template_image_url:
        storage.delete_file(project.template_image_url)
    return {"deleted": True, "project_id": project_id}


class ProjectStatusRequest(BaseModel):
    status: str


@router.patch("/{project_id}/status", response_model=ProjectResponse)
async def set_project_status(project_id: str, data: ProjectStatusRequest):
    """Activate or deactivate a project."""
    if data.status not in PROJECT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {data.status}")
    with SessionLocal() as session:
        project = get_project_or_404(session, project_id)
        updated = projects_repo.update_project(session, dataclasses.replace(project, status=data.status))
    logger.info("Project %s is now %s", project_id, updated.status)
    return project_to_response(updated)
