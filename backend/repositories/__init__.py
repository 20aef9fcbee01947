from .projects import ProjectsRepository
from .fields import FieldsRepository
from .submissions import SubmissionsRepository
from . import models

__all__ = ["ProjectsRepository", "FieldsRepository", "SubmissionsRepository", "models"]
