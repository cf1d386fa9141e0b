"""
Health check endpoint with dependency and import status
"""

from datetime import datetime

from fastapi import APIRouter, Depends

from api.dependencies import get_health_monitor, get_launcher
from importer.gate import JobLauncher
from importer.scheduler import HealthMonitor
from schemas.api import HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    monitor: HealthMonitor = Depends(get_health_monitor),
    launcher: JobLauncher = Depends(get_launcher)
):
    """
    Health check endpoint.

    Returns:
    - Latest check result of each dependency
    - Whether an import is running
    """
    if not monitor.checked:
        await monitor.refresh()

    # Status is derived from the dependencies by the response validator
    return HealthCheckResponse(
        dependencies=monitor.results(),
        timestamp=datetime.utcnow(),
        import_running=launcher.busy
    )
