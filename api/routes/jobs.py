"""
Import trigger endpoint
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_launcher
from importer.gate import JobLauncher
from schemas.api import JobTriggerResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Jobs"])

ENQUEUED_MESSAGE = "Import Step request enqueued"
BUSY_MESSAGE = "Server is busy. Try again later"


@router.get(
    "/start-job",
    response_model=JobTriggerResponse,
    responses={503: {"model": JobTriggerResponse, "description": "An import is already running"}}
)
async def start_job(request: Request, launcher: JobLauncher = Depends(get_launcher)):
    """
    Start one import run in the background.

    Answers immediately; the outcome of the run is only visible in the
    logs, metrics and step records.
    """
    request_id = getattr(request.state, "request_id", "-")

    if not launcher.launch():
        logger.info(f"[{request_id}] GET /start-job refused: import in progress")
        return JSONResponse(status_code=503, content={"message": BUSY_MESSAGE})

    logger.info(f"[{request_id}] GET /start-job enqueued")
    return JobTriggerResponse(message=ENQUEUED_MESSAGE)
