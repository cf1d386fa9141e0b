from sqlalchemy import Column, Integer, String, Index
from models.base import Base


class File(Base):
    """
    A content-addressed artifact produced by one Step and consumed by a later one.

    Design:
    - checksum is SHA-256 truncated to 16 bytes, hex encoded (32 chars)
    - identical content always maps to the same row
    - rows are immutable and never deleted by the pipeline
    """
    __tablename__ = "file"

    file_id = Column(Integer, primary_key=True, autoincrement=True)
    checksum = Column(String(32), nullable=False)
    name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)

    created_by = Column(String(100), nullable=False)

    __table_args__ = (
        Index("idx_file_checksum", "checksum", unique=True),
    )
