"""
Pydantic snapshots of billing database rows.

The step service and the importer engine never hold ORM instances: every
repository read returns one of these records and every mutation goes back
through the repository. Transitions work on copies (model_copy), so the
record a caller passed in is never modified.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime
from models.base import CollectionJobStatus, StepStatus, StepTypeName


class CollectionJobRecord(BaseModel):
    """Snapshot of a collection_job row"""
    collection_job_id: int
    source_id: int
    status: CollectionJobStatus
    current_step_type_id: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class StepRecord(BaseModel):
    """Snapshot of a step row"""
    step_id: int
    step_type_id: int
    collection_job_id: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    file_id: Optional[int] = None
    status: StepStatus
    error: str = ""

    @validator("error", pre=True)
    def none_error_is_empty(cls, v):
        return v or ""

    class Config:
        from_attributes = True


class StepTypeRecord(BaseModel):
    """Snapshot of a step_type row"""
    step_type_id: int
    source_id: int
    name: StepTypeName
    step_order: int

    class Config:
        from_attributes = True


class FileRecord(BaseModel):
    """Snapshot of a file row"""
    file_id: int
    checksum: str = Field(..., min_length=1, max_length=32)
    name: str
    file_path: str

    class Config:
        from_attributes = True


class ImporterOptions(BaseModel):
    """
    Configuration shared by the step service and the importer engine.

    Passed explicitly to each service constructor.
    """
    source_id: int
    step_type_id: int
    input_folder: str
    user: str

    @classmethod
    def from_settings(cls, settings) -> "ImporterOptions":
        return cls(
            source_id=settings.SOURCE_ID,
            step_type_id=settings.STEP_TYPE_ID,
            input_folder=settings.INPUT_FOLDER,
            user=settings.IMPORT_USER,
        )
