"""
Background jobs - Admin Routes
Manual run of scheduled jobs and scheduler status.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from middleware import admin_route_guard, require_admin
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/jobs",
    tags=["Jobs"],
    dependencies=[Depends(admin_route_guard)],
)


class RunJobRequest(BaseModel):
    job: str


@router.get("")
async def list_jobs():
    from job_runner import JOB_RUNNERS
    return {"success": True, "data": sorted(JOB_RUNNERS.keys())}


@router.post("/run")
async def run_job_now(body: RunJobRequest, admin: dict = Depends(require_admin)):
    """Run a single background job by id. Returns the job's message for the toast."""
    from job_runner import JOB_RUNNERS

    job_id = (body.job or "").strip()
    if job_id not in JOB_RUNNERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid job. Use one of: {', '.join(sorted(JOB_RUNNERS.keys()))}"
        )
    try:
        result = await JOB_RUNNERS[job_id]()
    except Exception as e:
        logger.error(f"Manual job run error ({job_id}): {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run job: {job_id}"
        )
    logger.info(f"Job {job_id} run manually by {admin.get('sub')}")
    return {"success": True, "job": job_id, "message": result.get("message"), "count": result.get("count")}
