from sqlalchemy import Enum
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class CollectionJobStatus(str, enum.Enum):
    """Collection job status"""
    IN_PROGRESS = "IN PROGRESS"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


class StepStatus(str, enum.Enum):
    """Step status"""
    IN_PROGRESS = "IN PROGRESS"
    FINISHED = "FINISHED"
    ERROR = "ERROR"


class StepTypeName(str, enum.Enum):
    """Pipeline stages, in their usual order"""
    DOWNLOAD = "DOWNLOAD"
    SUMMARIZE = "SUMMARIZE"
    TRANSLATE = "TRANSLATE"
    IMPORT = "IMPORT"
    ARCHIVE = "ARCHIVE"


def value_enum(enum_cls, name: str) -> Enum:
    """Enum column storing member values ("IN PROGRESS") rather than names"""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )
