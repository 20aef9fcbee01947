"""
Project repository backed by SQLAlchemy/SQLite.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from domain.models import OwnerTier, Project
from repositories.models import ProjectORM


def _tier(value: Optional[str]) -> OwnerTier:
    try:
        return OwnerTier(value)
    except ValueError:
        return OwnerTier.FREE


def _project_from_orm(orm: ProjectORM) -> Project:
    return Project(
        id=orm.id,
        name=orm.name,
        template_image_url=orm.template_image_url,
        template_width=orm.template_width,
        template_height=orm.template_height,
        owner_tier=_tier(orm.owner_tier),
        status=orm.status,
        created_at=orm.created_at,
    )


class ProjectsRepository:
    """CRUD operations for projects. Fields live in FieldsRepository."""

    def list_projects(self, session: Session) -> List[Project]:
        projects = session.query(ProjectORM).order_by(ProjectORM.created_at.desc()).all()
        return [_project_from_orm(p) for p in projects]

    def get_project(self, session: Session, project_id: str) -> Optional[Project]:
        orm = session.get(ProjectORM, project_id)
        if not orm:
            return None
        return _project_from_orm(orm)

    def create_project(self, session: Session, project: Project) -> Project:
        orm = ProjectORM(
            id=project.id,
            name=project.name,
            template_image_url=project.template_image_url,
            template_width=project.template_width,
            template_height=project.template_height,
            owner_tier=_tier(project.owner_tier).value,
            status=project.status,
            created_at=project.created_at or datetime.utcnow(),
        )
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _project_from_orm(orm)

    def update_project(self, session: Session, project: Project) -> Project:
        orm = session.get(ProjectORM, project.id)
        if not orm:
            raise ValueError("Project not found")
        orm.name = project.name
        orm.template_image_url = project.template_image_url
        orm.template_width = project.template_width
        orm.template_height = project.template_height
        orm.owner_tier = _tier(project.owner_tier).value
        orm.status = project.status
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _project_from_orm(orm)

    def delete_project(self, session: Session, project_id: str) -> None:
        orm = session.get(ProjectORM, project_id)
        if orm:
            session.delete(orm)
            session.commit()
