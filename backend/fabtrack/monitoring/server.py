"""
Monitoring server endpoints.

Read-only HTTP API for job state visibility on the shop floor.
"""

from fastapi import APIRouter, HTTPException, Request
from typing import Optional

from fabtrack.workflow.errors import BatchNotFoundError, JobNotFoundError
from .models import HealthResponse, JobListResponse, JobTimingResponse
from .queries import get_job_summaries, get_job_detail, get_job_history, get_job_timing


router = APIRouter(prefix="/monitor", tags=["monitoring"])


@router.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok")


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(request: Request):
    """
    List all known jobs with summary information.

    Jobs are sorted by last update, newest first.
    """
    registry = request.app.state.job_registry
    return get_job_summaries(registry)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, request: Request):
    """
    Retrieve the full job document in wire format.

    Raises:
        404: If the job ID does not exist
    """
    registry = request.app.state.job_registry

    try:
        return get_job_detail(registry, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/jobs/{job_id}/history")
async def get_history(job_id: str, request: Request, batch_id: Optional[str] = None):
    """
    Job history (newest first), or a single batch's history when
    batch_id is given (oldest first).

    Raises:
        404: If the job or batch does not exist
    """
    registry = request.app.state.job_registry

    try:
        return get_job_history(registry, job_id, batch_id)
    except (JobNotFoundError, BatchNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/jobs/{job_id}/timing", response_model=JobTimingResponse)
async def get_timing(job_id: str, request: Request):
    registry = request.app.state.job_registry

    try:
        return get_job_timing(registry, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
