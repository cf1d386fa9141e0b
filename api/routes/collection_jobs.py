"""
Collection job inspection endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, Path

from api.dependencies import get_billing_db
from core.exceptions import NotFoundError
from importer.repository import BillingDB
from schemas.api import CollectionJobDetail
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Collection Jobs"])


@router.get("/collection-jobs/{collection_job_id}", response_model=CollectionJobDetail)
async def get_collection_job(
    collection_job_id: int = Path(..., ge=1, description="Collection job id"),
    billing_db: BillingDB = Depends(get_billing_db)
):
    """Collection job with its steps, oldest first"""
    try:
        job = await billing_db.collection_jobs.fetch(collection_job_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Collection job {collection_job_id} not found")

    steps = await billing_db.steps.list_by_collection_job(collection_job_id)
    return CollectionJobDetail(collection_job=job, steps=steps)
