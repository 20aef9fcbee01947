"""
Submission repository backed by SQLAlchemy/SQLite.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session

from domain.models import Submission
from repositories.models import SubmissionORM


def _submission_from_orm(orm: SubmissionORM) -> Submission:
    return Submission(
        id=orm.id,
        project_id=orm.project_id,
        participant_name=orm.participant_name,
        field_values=dict(orm.field_values or {}),
        photo_url=orm.photo_url,
        generated_card_url=orm.generated_card_url,
        created_at=orm.created_at,
    )


class SubmissionsRepository:
    """Submissions are write-once; there is no update."""

    def list_submissions(self, session: Session, project_id: str) -> List[Submission]:
        rows = (
            session.query(SubmissionORM)
            .filter(SubmissionORM.project_id == project_id)
            .order_by(SubmissionORM.created_at.desc())
            .all()
        )
        return [_submission_from_orm(r) for r in rows]

    def get_submission(self, session: Session, submission_id: str) -> Optional[Submission]:
        orm = session.get(SubmissionORM, submission_id)
        if not orm:
            return None
        return _submission_from_orm(orm)

    def create_submission(self, session: Session, submission: Submission) -> Submission:
        orm = SubmissionORM(
            id=submission.id,
            project_id=submission.project_id,
            participant_name=submission.participant_name,
            field_values=dict(submission.field_values),
            photo_url=submission.photo_url,
            generated_card_url=submission.generated_card_url,
            created_at=submission.created_at or datetime.utcnow(),
        )
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _submission_from_orm(orm)

    def delete_submission(self, session: Session, submission_id: str) -> bool:
        orm = session.get(SubmissionORM, submission_id)
        if not orm:
            return False
        session.delete(orm)
        session.commit()
        return True
