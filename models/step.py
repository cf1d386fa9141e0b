from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, StepStatus, value_enum


class Step(Base):
    """
    One unit of work within a CollectionJob.

    Lifecycle:
    - Created IN PROGRESS
    - FINISHED with a file attached, or ERROR with a message attached
    - Restarted back to IN PROGRESS (file and error cleared) to retry

    At most one non-FINISHED step may exist per (source, step type, user).
    This is enforced by StepRepository.fetch_unfinished, not by a constraint.
    """
    __tablename__ = "step"

    step_id = Column(Integer, primary_key=True, autoincrement=True)
    step_type_id = Column(Integer, ForeignKey("step_type.step_type_id"), nullable=False, index=True)
    collection_job_id = Column(
        Integer, ForeignKey("collection_job.collection_job_id"), nullable=False, index=True
    )

    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)

    # Output (or completion marker) of this step
    file_id = Column(Integer, ForeignKey("file.file_id"), nullable=True, index=True)

    status = Column(value_enum(StepStatus, "step_status"), default=StepStatus.IN_PROGRESS, nullable=False)
    error = Column(Text, nullable=False, default="")

    # Audit
    created_by = Column(String(100), nullable=False, index=True)
    modified_by = Column(String(100), nullable=True)

    collection_job = relationship("CollectionJob", back_populates="steps")
    step_type = relationship("StepType")
    file = relationship("File")

    __table_args__ = (
        Index("idx_step_type_status", "step_type_id", "status"),
        Index("idx_step_job_type", "collection_job_id", "step_type_id"),
    )
