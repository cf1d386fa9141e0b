from sqlalchemy import Column, Integer, Index
from models.base import Base, StepTypeName, value_enum


class StepType(Base):
    """
    Static description of a pipeline stage for a source.

    Read-only reference data: step_order defines the pipeline sequence
    for the owning source.
    """
    __tablename__ = "step_type"

    step_type_id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, nullable=False)
    name = Column(value_enum(StepTypeName, "step_type_name"), nullable=False)
    step_order = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_step_type_source_order", "source_id", "step_order"),
        Index("idx_step_type_source_name", "source_id", "name"),
    )
