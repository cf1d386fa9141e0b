"""
Pydantic schemas for the vendor mapping file with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Dict, List


class ColumnMapper(BaseModel):
    """Where one logical column comes from and where it goes"""
    table_index: int = Field(..., alias="tableIndex", ge=0)
    csv_index: int = Field(..., alias="csvIndex", ge=0)

    class Config:
        populate_by_name = True


class VendorMapper(BaseModel):
    """
    Per-vendor import configuration.

    Ensures:
    - tableIndex values are exactly 0..n-1 (one slot per destination column)
    - sqlValues has one placeholder per mapped column plus one for the
      importing user, which always goes last
    """
    vendor_id: int = Field(..., alias="vendorID")
    vendor_name: str = Field(..., alias="vendorName", min_length=1)
    sql_base: str = Field(..., alias="sqlBase", min_length=1)
    # Declared before sql_values: the placeholder check reads it
    column_mappers: Dict[str, ColumnMapper] = Field(..., alias="columnMappers")
    sql_values: str = Field(..., alias="sqlValues", min_length=1)

    @validator("sql_base")
    def clean_sql_base(cls, v):
        v = v.strip()
        if not v.upper().startswith("INSERT"):
            raise ValueError("sqlBase must be an INSERT statement prefix")
        return v

    @validator("column_mappers")
    def check_table_indexes(cls, v):
        if not v:
            raise ValueError("columnMappers must not be empty")
        indexes = sorted(m.table_index for m in v.values())
        if indexes != list(range(len(v))):
            raise ValueError(f"tableIndex values must be 0..{len(v) - 1} without gaps, got {indexes}")
        return v

    @validator("sql_values")
    def check_placeholders(cls, v, values):
        mappers = values.get("column_mappers")
        if mappers is not None and v.count("?") != len(mappers) + 1:
            raise ValueError(
                f"sqlValues must hold {len(mappers) + 1} placeholders "
                f"({len(mappers)} columns plus user), got {v.count('?')}"
            )
        return v

    @property
    def row_width(self) -> int:
        return len(self.column_mappers) + 1

    def ordered_mappers(self) -> List[ColumnMapper]:
        """Mappers sorted by destination column"""
        return sorted(self.column_mappers.values(), key=lambda m: m.table_index)

    class Config:
        populate_by_name = True
