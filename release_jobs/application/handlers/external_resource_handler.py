"""
External resource job handlers.

Create and delete jobs share one poll-until-terminal state machine:

    not triggered -> in progress -> complete | failed | not found

The first progress step triggers the operation and records percent 1;
triggering is not retried because it is not safe to repeat blindly.
Later steps poll the resource by handle. A failed poll leaves the job
running; only a terminal state reported by the service ends it.

Dependencies: sqlalchemy, release_jobs.boundary.aws, release_jobs.core
System role: Handlers for JobType.EXTERNAL_CREATE and JobType.EXTERNAL_DELETE
"""

import logging
from abc import abstractmethod
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from release_jobs.application.handlers.base_handler import JobHandler, JobModelT
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.aws.capabilities import ExternalCapabilities
from release_jobs.boundary.aws.cloudformation_client import CREATE_COMPLETE, DELETE_COMPLETE
from release_jobs.boundary.aws.orchestration import ExternalStatus, ResourceOrchestrator
from release_jobs.boundary.db.CRUD.release_crud import release_crud
from release_jobs.boundary.db.models.job_model import (
    ExternalCreateJobModel,
    ExternalDeleteJobModel,
    JobType,
)
from release_jobs.boundary.db.models.release_model import ReleaseModel
from release_jobs.core.exceptions import (
    ExternalServiceError,
    ExternalServiceNotEnabledError,
    ExternalTriggerError,
    UnexpectedCardinalityError,
)
from release_jobs.core.job_progress import ProgressResult
from release_jobs.models.job import ExternalCreateJobInput, ExternalDeleteJobInput

logger = logging.getLogger(__name__)

TRIGGERED_PERCENT = 1


class ExternalResourceJobHandler(JobHandler[JobModelT]):
    """Shared trigger-then-poll behaviour of the external resource jobs."""

    success_status: str

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: JobLifecycleService,
        orchestrator: ResourceOrchestrator,
        capabilities: ExternalCapabilities,
    ) -> None:
        """
        Args:
            session_factory: Factory each step opens its transaction from
            lifecycle: Lifecycle manager used to finalize jobs
            orchestrator: External resource service
            capabilities: Result of the startup probe
        """
        super().__init__(session_factory, lifecycle)
        self._orchestrator = orchestrator
        self._capabilities = capabilities

    def _require_enabled(self) -> None:
        if not self._capabilities.aws_enabled:
            raise ExternalServiceNotEnabledError("AWS CloudFormation")

    @abstractmethod
    def _needs_trigger(self, job: JobModelT) -> bool:
        """True until the external operation has been triggered."""

    @abstractmethod
    async def _trigger(self, job: JobModelT, release: ReleaseModel) -> str:
        """Trigger the external operation and describe it for the job log."""

    async def progress(self, job_id: UUID, time_budget: float) -> ProgressResult:
        async with self._session_factory() as session, session.begin():
            job = await self._load_running_job(session, job_id)

            if self._needs_trigger(job):
                release = await release_crud.get_by_id(session, job.release_id)
                try:
                    message = await self._trigger(job, release)
                except ExternalTriggerError as e:
                    logger.error(
                        f"{__name__}:progress - Trigger failed for job {job_id}: {e.message}",
                        extra={"job_id": str(job_id), "job_type": self.job_type.value},
                    )
                    job.add_message(f"Trigger failed: {e.message}")
                    return ProgressResult.failed(e.message)
                job.percent_done = max(job.percent_done, TRIGGERED_PERCENT)
                job.add_message(message)
                return ProgressResult.more_work()

            handle = job.external_resource_handle

        return await self._poll(job_id, handle)

    async def _poll(self, job_id: UUID, handle: str) -> ProgressResult:
        try:
            description = await self._orchestrator.describe(handle, self.success_status)
        except UnexpectedCardinalityError as e:
            logger.error(f"{__name__}:_poll - {e.message}", extra={"job_id": str(job_id)})
            return ProgressResult.failed(e.message)
        except ExternalServiceError as e:
            logger.warning(
                f"{__name__}:_poll - Poll of {handle} failed, will retry next cycle: {e.message}",
                extra={"job_id": str(job_id)},
            )
            return ProgressResult.more_work()

        if description.status is ExternalStatus.IN_PROGRESS:
            return ProgressResult.more_work()
        if description.status is ExternalStatus.COMPLETE:
            return ProgressResult.done()
        if description.status is ExternalStatus.NOT_FOUND:
            return ProgressResult.failed(f"External resource {handle} disappeared")
        reason = description.raw_status or "failed"
        if description.status_reason:
            reason = f"{reason}: {description.status_reason}"
        return ProgressResult.failed(reason)


class ExternalCreateJobHandler(ExternalResourceJobHandler[ExternalCreateJobModel]):
    """Creates the release's external resource from a template."""

    job_type = JobType.EXTERNAL_CREATE
    job_model = ExternalCreateJobModel
    input_model = ExternalCreateJobInput
    audit_description = "Install external access resource"
    initial_message = "Created"
    success_status = CREATE_COMPLETE

    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> ExternalCreateJobModel:
        self._require_enabled()
        params = self.parse_input(job_input)
        return ExternalCreateJobModel(
            external_template_location=params.template_location,
            external_resource_handle=None,
        )

    def _needs_trigger(self, job: ExternalCreateJobModel) -> bool:
        return not job.external_resource_handle

    async def _trigger(self, job: ExternalCreateJobModel, release: ReleaseModel) -> str:
        name = self._orchestrator.resource_name_for_release(release.release_key)
        job.external_resource_handle = await self._orchestrator.trigger_create(
            name, job.external_template_location
        )
        return f"Triggered creation of {name}"


class ExternalDeleteJobHandler(ExternalResourceJobHandler[ExternalDeleteJobModel]):
    """Deletes the release's external resource, located by its derived name at start."""

    job_type = JobType.EXTERNAL_DELETE
    job_model = ExternalDeleteJobModel
    input_model = ExternalDeleteJobInput
    audit_description = "Delete external access resource"
    initial_message = "Located external resource"
    success_status = DELETE_COMPLETE

    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> ExternalDeleteJobModel:
        """
        Resolve the stack to delete while starting the job.

        Raises:
            ExternalServiceNotEnabledError: If AWS is not available
            ExternalResourceNotFoundError: If the release has no stack
            UnexpectedCardinalityError: If several stacks carry the release's name
        """
        self._require_enabled()
        self.parse_input(job_input)
        name = self._orchestrator.resource_name_for_release(release.release_key)
        handle = await self._orchestrator.find_by_name(name)
        return ExternalDeleteJobModel(external_resource_handle=handle)

    def _needs_trigger(self, job: ExternalDeleteJobModel) -> bool:
        return job.percent_done == 0

    async def _trigger(self, job: ExternalDeleteJobModel, release: ReleaseModel) -> str:
        await self._orchestrator.trigger_delete(job.external_resource_handle)
        return f"Triggered deletion of {job.external_resource_handle}"
