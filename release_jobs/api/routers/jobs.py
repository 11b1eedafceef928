"""
Job API endpoints.

Routes: GET /jobs/running, GET /jobs/{job_id}

Dependencies: fastapi, release_jobs.application.services, release_jobs.models
System role: Job status HTTP API
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from release_jobs.api.deps import get_job_lifecycle_service
from release_jobs.api.routers.job_error_handling import handle_job_errors
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.models.job import JobDetail, RunningJobSummary

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/running", response_model=list[RunningJobSummary])
@handle_job_errors
async def list_running_jobs(
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> list[RunningJobSummary]:
    """Every running job, oldest first."""
    return await lifecycle.list_running_jobs()


@router.get("/{job_id}", response_model=JobDetail)
@handle_job_errors
async def get_job(
    job_id: UUID,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> JobDetail:
    """
    Get a job's status, progress and messages for polling.

    Raises:
        HTTPException(404): Job not found
    """
    return await lifecycle.get_job(job_id)
