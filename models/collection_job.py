from sqlalchemy import Column, Integer, String, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, CollectionJobStatus, value_enum


class CollectionJob(Base):
    """
    One end-to-end usage collection run for a source.

    Composed of Steps (download, transform, import, archive).
    current_step_type_id follows the most recently started Step.
    Status transitions are driven by the stage services that own them;
    the importer only moves current_step_type_id.
    """
    __tablename__ = "collection_job"

    collection_job_id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, nullable=False, index=True)

    status = Column(
        value_enum(CollectionJobStatus, "collection_job_status"),
        default=CollectionJobStatus.IN_PROGRESS,
        nullable=False
    )
    current_step_type_id = Column(Integer, nullable=False)

    start_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_date = Column(DateTime, nullable=True)

    # Audit
    created_by = Column(String(100), nullable=False)
    modified_by = Column(String(100), nullable=True)

    steps = relationship("Step", back_populates="collection_job")

    __table_args__ = (
        Index("idx_collection_job_status", "status"),
    )
