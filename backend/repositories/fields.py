"""
Field repository.

Returns raw records rather than Field objects: stored rows may be legacy or
malformed, and turning them into fields (migration + normalization) is the
job of services.legacy_migration.load_fields.
"""
from typing import Any, Dict, Iterable, List

from sqlalchemy.orm import Session

from domain.models import Field
from repositories.models import FieldORM
from services.geometry import field_to_record

_COLUMNS = [c.name for c in FieldORM.__table__.columns if c.name not in ("row_id", "project_id", "position")]


def _record_from_orm(orm: FieldORM) -> Dict[str, Any]:
    return {name: getattr(orm, name) for name in _COLUMNS}


class FieldsRepository:
    def list_fields(self, session: Session, project_id: str) -> List[Dict[str, Any]]:
        """Raw records in paint order (z_index, then saved position)."""
        rows = (
            session.query(FieldORM)
            .filter(FieldORM.project_id == project_id)
            .order_by(FieldORM.z_index, FieldORM.position)
            .all()
        )
        return [_record_from_orm(r) for r in rows]

    def replace_all(self, session: Session, project_id: str, fields: Iterable[Field]) -> int:
        """
        Replace a project's fields with `fields` in one transaction.

        Returns the number of rows written.
        """
        session.query(FieldORM).filter(FieldORM.project_id == project_id).delete(synchronize_session=False)
        count = 0
        for position, field in enumerate(fields):
            record = field_to_record(field)
            session.add(FieldORM(project_id=project_id, position=position, **record))
            count += 1
        session.commit()
        return count

