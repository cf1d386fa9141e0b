"""
Pydantic schemas for records, configuration and API payloads.

Schemas:
    billing: Snapshots of billing database rows and ImporterOptions
    vendor: Vendor mapping file (VendorMapper, ColumnMapper)
    api: API endpoint response models

Usage:
    from schemas.billing import StepRecord, ImporterOptions
    from schemas.vendor import VendorMapper
    from schemas.api import HealthCheckResponse

Validation:
    - Records are built from ORM rows (from_attributes)
    - The vendor mapping checks table indexes and placeholder counts
    - The health response derives its status from the dependencies
"""

__all__ = [
    "CollectionJobRecord",
    "StepRecord",
    "StepTypeRecord",
    "FileRecord",
    "ImporterOptions",
    "VendorMapper",
    "ColumnMapper",
    "HealthCheckResponse",
    "MetricsResponse",
    "CollectionJobDetail",
]
