"""
SQLAlchemy ORM models for the billing database tables.

Models:
    base: Base declarative class and shared enums
          (CollectionJobStatus, StepStatus, StepTypeName)
    collection_job: One usage collection run for a source
    step: One stage execution within a collection job
    step_type: Read-only stage definitions per source
    file: Content-addressed artifacts exchanged between steps

Usage:
    from models import CollectionJob, Step, StepType, File
    from models.base import StepStatus

Relationships:
    - CollectionJob → Step (one-to-many)
    - StepType → Step (one-to-many)
    - File → Step (one-to-many; a file is produced by one step and
      referenced as completion marker by later ones)
"""

from models.base import Base, CollectionJobStatus, StepStatus, StepTypeName
from models.collection_job import CollectionJob
from models.step import Step
from models.step_type import StepType
from models.file import File

__all__ = [
    "Base",
    "CollectionJobStatus",
    "StepStatus",
    "StepTypeName",
    "CollectionJob",
    "Step",
    "StepType",
    "File",
]
