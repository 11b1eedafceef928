"""
Release job API endpoints.

Routes:
    POST /releases/{release_key}/jobs/selection
    POST /releases/{release_key}/jobs/external-create
    POST /releases/{release_key}/jobs/external-delete
    POST /releases/{release_key}/jobs/external-execution
    POST /releases/{release_key}/jobs/cancel
    GET  /releases/{release_key}/jobs
    GET  /releases/{release_key}/jobs/previous

Authorization is enforced in front of this router.

Dependencies: fastapi, release_jobs.application.services, release_jobs.models
System role: Job control HTTP API
"""

from fastapi import APIRouter, Depends, Query, status

from release_jobs.api.deps import get_job_lifecycle_service
from release_jobs.api.routers.job_error_handling import handle_job_errors
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.db.models.job_model import JobType
from release_jobs.models.common import PaginatedResponse
from release_jobs.models.job import (
    ExternalCreateJobInput,
    ExternalExecutionJobInput,
    JobDetail,
    ReleaseJobState,
)

router = APIRouter(prefix="/releases/{release_key}/jobs", tags=["release-jobs"])


@router.get("", response_model=ReleaseJobState)
@handle_job_errors
async def get_release_jobs(
    release_key: str,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """Current job state of a release (running job, if any)."""
    return await lifecycle.get_release_job_state(release_key)


@router.get("/previous", response_model=PaginatedResponse[JobDetail])
@handle_job_errors
async def get_previous_jobs(
    release_key: str,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> PaginatedResponse[JobDetail]:
    """Every job run for the release, newest first."""
    return await lifecycle.get_previous_jobs(release_key, page=page, page_size=page_size)


@router.post("/selection", response_model=ReleaseJobState, status_code=status.HTTP_202_ACCEPTED)
@handle_job_errors
async def start_selection_job(
    release_key: str,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """
    Start re-selecting the release's specimens.

    Raises:
        HTTPException(404): Release not found
        HTTPException(409): A job is already running for the release
    """
    return await lifecycle.start_job(release_key, JobType.SELECTION)


@router.post("/external-create", response_model=ReleaseJobState, status_code=status.HTTP_202_ACCEPTED)
@handle_job_errors
async def start_external_create_job(
    release_key: str,
    body: ExternalCreateJobInput,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """Start creating the release's external access resource from a template."""
    return await lifecycle.start_job(release_key, JobType.EXTERNAL_CREATE, body)


@router.post("/external-delete", response_model=ReleaseJobState, status_code=status.HTTP_202_ACCEPTED)
@handle_job_errors
async def start_external_delete_job(
    release_key: str,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """Start deleting the release's external access resource."""
    return await lifecycle.start_job(release_key, JobType.EXTERNAL_DELETE)


@router.post("/external-execution", response_model=ReleaseJobState, status_code=status.HTTP_202_ACCEPTED)
@handle_job_errors
async def start_external_execution_job(
    release_key: str,
    body: ExternalExecutionJobInput,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """Start an external execution for an activated release."""
    return await lifecycle.start_job(release_key, JobType.EXTERNAL_EXECUTION, body)


@router.post("/cancel", response_model=ReleaseJobState)
@handle_job_errors
async def cancel_running_job(
    release_key: str,
    lifecycle: JobLifecycleService = Depends(get_job_lifecycle_service),
) -> ReleaseJobState:
    """
    Request cancellation of the release's running job.

    The job stops at the worker's next cycle.

    Raises:
        HTTPException(404): Release not found
        HTTPException(409): No job is running for the release
    """
    return await lifecycle.request_cancellation(release_key)
