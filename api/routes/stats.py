"""
In-process metrics endpoint
"""

from datetime import datetime

from fastapi import APIRouter

from core import metrics
from schemas.api import MetricsResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """
    Importer counters since process start.

    Returns:
    - Errors per traced action
    - Duration totals per traced action
    - Bulk insert statements and imported rows
    """
    counts = metrics.get_counts()

    return MetricsResponse(
        timestamp=datetime.utcnow(),
        uptime_seconds=counts["uptime_seconds"],
        errors=counts["errors"],
        durations=counts["durations"],
        bulk_inserts=counts["bulk_inserts"],
        rows_imported=counts["rows_imported"]
    )
