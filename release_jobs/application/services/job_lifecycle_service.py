"""
Job lifecycle service.

Starts jobs under the one-running-job-per-release invariant, lists the
running jobs the worker advances, records cancellation requests and
finalizes jobs. Every public operation runs in its own transaction
opened from the injected session factory.

Dependencies: sqlalchemy, pydantic, release_jobs.boundary.db, release_jobs.models
System role: Job lifecycle manager
"""

import logging
from typing import Any, Awaitable, Callable, Protocol
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from release_jobs.application.services.audit_event_service import AuditEventService
from release_jobs.boundary.db.CRUD.job_crud import job_crud
from release_jobs.boundary.db.CRUD.release_crud import release_crud
from release_jobs.boundary.db.models.audit_event_model import AuditAction, AuditOutcome
from release_jobs.boundary.db.models.job_model import JobModel, JobStatus, JobType
from release_jobs.boundary.db.models.release_model import ReleaseModel
from release_jobs.core.clock import utc_now
from release_jobs.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    NoRunningJobError,
    ReleaseNotFoundError,
)
from release_jobs.core.job_progress import FINAL_PERCENT, JobOutcome
from release_jobs.models.common import PaginatedResponse
from release_jobs.models.job import JobDetail, ReleaseJobState, RunningJobSummary

logger = logging.getLogger(__name__)

ResultMerge = Callable[[AsyncSession, JobModel], Awaitable[None]]

TERMINAL_STATUS: dict[JobOutcome, JobStatus] = {
    JobOutcome.SUCCEEDED: JobStatus.SUCCEEDED,
    JobOutcome.FAILED: JobStatus.FAILED,
    JobOutcome.CANCELLED: JobStatus.CANCELLED,
}

AUDIT_OUTCOME: dict[JobOutcome, AuditOutcome] = {
    JobOutcome.SUCCEEDED: AuditOutcome.SUCCESS,
    JobOutcome.FAILED: AuditOutcome.SERIOUS_FAILURE,
    JobOutcome.CANCELLED: AuditOutcome.MINOR_FAILURE,
}


class JobBuilder(Protocol):
    """Creates the type-specific part of a new job inside the start transaction."""

    job_type: JobType
    audit_description: str
    initial_message: str

    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> JobModel: ...

    async def after_insert(self, session: AsyncSession, job: JobModel, release: ReleaseModel) -> None: ...


class JobLifecycleService:
    """
    Job lifecycle manager.

    Per-type creation is delegated to the JobBuilder registered for the job
    type (the job's handler); everything shared by all job kinds happens
    here.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_service: AuditEventService | None = None,
    ) -> None:
        """
        Initialize lifecycle service.

        Args:
            session_factory: Factory each operation opens its transaction from
            audit_service: Audit recorder
        """
        self._session_factory = session_factory
        self._audit = audit_service or AuditEventService()
        self._builders: dict[JobType, JobBuilder] = {}

    def register_builder(self, builder: JobBuilder) -> None:
        """Register the builder (handler) responsible for a job type."""
        self._builders[builder.job_type] = builder

    async def start_job(
        self,
        release_key: str,
        job_type: JobType,
        job_input: BaseModel | dict[str, Any] | None = None,
    ) -> ReleaseJobState:
        """
        Start a job for a release.

        In one transaction: lock the release, check that no job is running
        for it, open the audit event, insert the job (running, 0%, one
        initial message) and let the builder finish its type-specific setup.

        Args:
            release_key: Release the job runs for
            job_type: Kind of job
            job_input: Type-specific input, validated by the builder

        Returns:
            ReleaseJobState: The release with its now-running job

        Raises:
            ReleaseNotFoundError: If the release does not exist
            JobAlreadyRunningError: If the release already has a running job
            ValueError: If no handler is registered for the job type
        """
        builder = self._builders.get(job_type)
        if builder is None:
            raise ValueError(f"No handler registered for job type {job_type.value}")

        async with self._session_factory() as session, session.begin():
            release = await release_crud.get_by_release_key(session, release_key, for_update=True)
            if release is None:
                raise ReleaseNotFoundError(release_key)

            running = await job_crud.get_running_for_release(session, release.id)
            if running:
                raise JobAlreadyRunningError(release_key, [job.id for job in running])

            now = utc_now()
            audit_event_id = await self._audit.start_release_audit_event(
                session,
                release.id,
                AuditAction.EXECUTE,
                builder.audit_description,
                now,
            )

            job = await builder.build_job(session, release, job_input)
            job.release_id = release.id
            job.status = JobStatus.RUNNING
            job.started = now
            job.percent_done = 0
            job.requested_cancellation = False
            job.messages = [builder.initial_message]
            job.audit_event_id = audit_event_id
            session.add(job)

            try:
                await session.flush()
            except IntegrityError as e:
                # lost a race against a concurrent start for the same release
                raise JobAlreadyRunningError(release_key) from e

            await builder.after_insert(session, job, release)
            job_id = job.id

        logger.info(
            f"{__name__}:start_job - Started {job_type.value} job {job_id} for release {release_key}",
            extra={"job_id": str(job_id), "release_key": release_key, "job_type": job_type.value},
        )
        return await self.get_release_job_state(release_key)

    async def list_running_jobs(self) -> list[RunningJobSummary]:
        """
        List every running job.

        Returns:
            list[RunningJobSummary]: Oldest job first
        """
        async with self._session_factory() as session, session.begin():
            rows = await job_crud.get_running(session)
            return [
                RunningJobSummary(
                    job_id=row.job.id,
                    job_type=row.job.job_type,
                    release_key=row.release_key,
                    requested_cancellation=row.job.requested_cancellation,
                    audit_event_id=row.job.audit_event_id,
                    audit_event_started=row.audit_started,
                )
                for row in rows
            ]

    async def request_cancellation(self, release_key: str) -> ReleaseJobState:
        """
        Flag the release's running job for cancellation.

        Idempotent. The job's status is unchanged until the worker observes
        the flag.

        Args:
            release_key: Release whose running job should stop

        Returns:
            ReleaseJobState: The release with its running job

        Raises:
            ReleaseNotFoundError: If the release does not exist
            NoRunningJobError: If no job is running for the release
        """
        async with self._session_factory() as session, session.begin():
            release = await release_crud.get_by_release_key(session, release_key)
            if release is None:
                raise ReleaseNotFoundError(release_key)

            running = await job_crud.get_running_for_release(session, release.id, for_update=True)
            if not running:
                raise NoRunningJobError(release_key)

            for job in running:
                if not job.requested_cancellation:
                    job.requested_cancellation = True
                    job.add_message("Cancellation requested")
                    logger.info(
                        f"{__name__}:request_cancellation - Cancellation requested for job {job.id}",
                        extra={"job_id": str(job.id), "release_key": release_key},
                    )

        return await self.get_release_job_state(release_key)

    async def finalize_job(
        self,
        job_id: UUID,
        outcome: JobOutcome,
        result_merge: ResultMerge | None = None,
        details: dict[str, Any] | None = None,
    ) -> JobDetail:
        """
        Move a running job to its terminal state.

        In one transaction: complete the audit event, run the result merge
        (only when the job succeeded), and set percent 100, the end time and
        the terminal status. A success reported for a job whose cancellation
        was requested is recorded as cancelled.

        Args:
            job_id: Job to finalize
            outcome: Terminal outcome
            result_merge: Merges the job's results into its release
            details: Extra audit details (e.g. the failure reason)

        Returns:
            JobDetail: The finalized job

        Raises:
            JobNotFoundError: If the job does not exist
            JobNotRunningError: If the job is already terminal
        """
        async with self._session_factory() as session, session.begin():
            job = await job_crud.get_by_id(session, job_id, for_update=True)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status is not JobStatus.RUNNING:
                raise JobNotRunningError(job_id, job.status.value)

            # A cancellation request outranks a late success
            if outcome is JobOutcome.SUCCEEDED and job.requested_cancellation:
                logger.info(
                    f"{__name__}:finalize_job - Job {job_id} finished after cancellation was requested",
                    extra={"job_id": str(job_id)},
                )
                outcome = JobOutcome.CANCELLED

            now = utc_now()
            if job.audit_event_id is not None:
                audit_details = {"jobId": str(job.id), **job.audit_details(), **(details or {})}
                await self._audit.complete_release_audit_event(
                    session,
                    job.audit_event_id,
                    AUDIT_OUTCOME[outcome],
                    job.started,
                    now,
                    audit_details,
                )

            if outcome is JobOutcome.SUCCEEDED and result_merge is not None:
                await result_merge(session, job)

            job.percent_done = FINAL_PERCENT
            job.ended = now
            job.status = TERMINAL_STATUS[outcome]
            job.add_message(f"Job {outcome.value}")
            await session.flush()
            detail = JobDetail.model_validate(job)

        logger.info(
            f"{__name__}:finalize_job - Job {job_id} {outcome.value}",
            extra={"job_id": str(job_id), "outcome": outcome.value},
        )
        return detail

    async def get_job(self, job_id: UUID) -> JobDetail:
        """
        Get one job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        async with self._session_factory() as session, session.begin():
            job = await job_crud.get_by_id(session, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return JobDetail.model_validate(job)

    async def get_release_job_state(self, release_key: str) -> ReleaseJobState:
        """
        Get the job-related state of a release.

        Raises:
            ReleaseNotFoundError: If the release does not exist
        """
        async with self._session_factory() as session, session.begin():
            release = await release_crud.get_by_release_key(session, release_key)
            if release is None:
                raise ReleaseNotFoundError(release_key)
            running = await job_crud.get_running_for_release(session, release.id)
            return ReleaseJobState(
                release_key=release.release_key,
                running_job=JobDetail.model_validate(running[0]) if running else None,
                selected_specimen_count=await release_crud.count_selected_specimens(session, release.id),
            )

    async def get_previous_jobs(
        self,
        release_key: str,
        page: int = 1,
        page_size: int = 20,
    ) -> PaginatedResponse[JobDetail]:
        """
        Page through the finished jobs of a release, newest first.

        Args:
            release_key: Release key
            page: 1-based page number
            page_size: Jobs per page

        Returns:
            PaginatedResponse[JobDetail]

        Raises:
            ReleaseNotFoundError: If the release does not exist
            ValueError: If page or page_size is not positive
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        async with self._session_factory() as session, session.begin():
            release = await release_crud.get_by_release_key(session, release_key)
            if release is None:
                raise ReleaseNotFoundError(release_key)

            offset = (page - 1) * page_size
            total = await job_crud.count_for_release(session, release.id)
            jobs = await job_crud.get_for_release(session, release.id, limit=page_size, offset=offset)
            return PaginatedResponse[JobDetail](
                items=[JobDetail.model_validate(job) for job in jobs],
                total=total,
                page=page,
                page_size=page_size,
                has_more=offset + len(jobs) < total,
            )
