"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from schemas.billing import CollectionJobRecord, StepRecord


# ============================================================================
# Job trigger
# ============================================================================

class JobTriggerResponse(BaseModel):
    """Acknowledgement for /start-job; never carries the run outcome"""
    message: str

    class Config:
        json_schema_extra = {
            "example": {"message": "Import Step request enqueued"}
        }


# ============================================================================
# Health Check Schemas
# ============================================================================

class DependencyHealth(BaseModel):
    """Result of the latest check of one dependency"""
    name: str
    description: str = ""
    healthy: bool
    checked_at: datetime
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    dependencies: List[DependencyHealth] = Field(default_factory=list)
    status: str = Field("healthy", description="Overall service status: healthy, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    import_running: bool = False

    @validator("status", pre=True, always=True)
    def determine_status(cls, v, values):
        """Unhealthy as soon as one dependency failed its last check"""
        dependencies = values.get("dependencies") or []
        if any(not d.healthy for d in dependencies):
            return "unhealthy"
        return "healthy"

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "import_running": False,
                "dependencies": [
                    {
                        "name": "BillingDB",
                        "description": "Billing Database Interface",
                        "healthy": True,
                        "checked_at": "2024-01-15T10:30:00Z",
                        "details": {"dialect": "postgresql", "latency_ms": 2.1}
                    }
                ]
            }
        }


# ============================================================================
# Metrics Schemas
# ============================================================================

class ActionDurationInfo(BaseModel):
    count: int
    total_seconds: float


class MetricsResponse(BaseModel):
    """In-process counters"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    uptime_seconds: int
    errors: Dict[str, int] = Field(default_factory=dict)
    durations: Dict[str, ActionDurationInfo] = Field(default_factory=dict)
    bulk_inserts: int = 0
    rows_imported: int = 0


# ============================================================================
# Collection Job Schemas
# ============================================================================

class CollectionJobDetail(BaseModel):
    """A collection job with all of its steps"""
    collection_job: CollectionJobRecord
    steps: List[StepRecord] = Field(default_factory=list)
