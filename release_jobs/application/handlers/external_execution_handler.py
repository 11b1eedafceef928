"""
External execution job handler.

The execution is started while the job is created; each progress step
polls it. The first poll raises percent-done to 1, and when the execution
runs a distributed map its item counts drive percent-done from then on.
Percent-done never decreases.

Dependencies: sqlalchemy, release_jobs.boundary.aws, release_jobs.core
System role: Handler for JobType.EXTERNAL_EXECUTION
"""

import logging
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from release_jobs.application.handlers.base_handler import JobHandler
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.aws.capabilities import ExternalCapabilities
from release_jobs.boundary.aws.orchestration import (
    ExecutionDescription,
    ExecutionService,
    ExternalStatus,
)
from release_jobs.boundary.db.models.job_model import ExternalExecutionJobModel, JobType
from release_jobs.boundary.db.models.release_model import ReleaseModel
from release_jobs.core.exceptions import (
    ExecutionServiceNotInstalledError,
    ExternalServiceError,
    ExternalServiceNotEnabledError,
    ReleaseNeedsActivationError,
)
from release_jobs.core.job_progress import ProgressResult, item_count_percent_done
from release_jobs.models.job import ExternalExecutionJobInput

logger = logging.getLogger(__name__)

FIRST_POLL_PERCENT = 1


class ExternalExecutionJobHandler(JobHandler[ExternalExecutionJobModel]):
    """Handler for external execution jobs."""

    job_type = JobType.EXTERNAL_EXECUTION
    job_model = ExternalExecutionJobModel
    input_model = ExternalExecutionJobInput
    audit_description = "Run external execution"
    initial_message = "Started execution"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: JobLifecycleService,
        executions: ExecutionService,
        capabilities: ExternalCapabilities,
    ) -> None:
        """
        Args:
            session_factory: Factory each step opens its transaction from
            lifecycle: Lifecycle manager used to finalize jobs
            executions: External execution service
            capabilities: Result of the startup probe
        """
        super().__init__(session_factory, lifecycle)
        self._executions = executions
        self._capabilities = capabilities

    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> ExternalExecutionJobModel:
        """
        Start the execution while the job is being created.

        Raises:
            ExternalServiceNotEnabledError: If AWS is not available
            ReleaseNeedsActivationError: If the release is not activated
            ExecutionServiceNotInstalledError: If no state machine is known
            ExternalTriggerError: If the execution could not be started
        """
        if not self._capabilities.aws_enabled:
            raise ExternalServiceNotEnabledError("AWS Step Functions")

        params = self.parse_input(job_input)
        if not release.is_activated:
            raise ReleaseNeedsActivationError(release.release_key, self.audit_description)

        state_machine_arn = params.state_machine_arn or self._capabilities.execution_state_machine_arn
        if not state_machine_arn:
            raise ExecutionServiceNotInstalledError(
                "No execution state machine is configured",
                operation="start_execution",
            )

        handle = await self._executions.start(state_machine_arn, params.execution_input)
        return ExternalExecutionJobModel(external_execution_handle=handle)

    async def progress(self, job_id: UUID, time_budget: float) -> ProgressResult:
        """
        Poll the execution once.

        The job row is only locked to read the handle and to record the
        outcome; the poll itself runs outside any transaction.
        """
        async with self._session_factory() as session, session.begin():
            job = await self._load_running_job(session, job_id)
            handle = job.external_execution_handle

        try:
            description = await self._executions.describe(handle)
        except ExternalServiceError as e:
            logger.warning(
                f"{__name__}:progress - Poll of {handle} failed, will retry next cycle: {e.message}",
                extra={"job_id": str(job_id)},
            )
            return ProgressResult.more_work()

        async with self._session_factory() as session, session.begin():
            job = await self._load_running_job(session, job_id)
            return self._apply_description(job, handle, description)

    @staticmethod
    def _apply_description(
        job: ExternalExecutionJobModel,
        handle: str,
        description: ExecutionDescription,
    ) -> ProgressResult:
        if description.status is ExternalStatus.NOT_FOUND:
            job.add_message("Execution disappeared")
            return ProgressResult.failed(f"Execution {handle} disappeared")

        percent = max(job.percent_done, FIRST_POLL_PERCENT)
        counts = description.item_counts
        if counts is not None:
            counted = item_count_percent_done(counts.done, counts.total)
            if counted is not None:
                percent = max(percent, counted)
        job.percent_done = percent

        if description.status is ExternalStatus.IN_PROGRESS:
            return ProgressResult.more_work()

        job.add_message(f"Execution ended {description.raw_status}")
        if description.status is ExternalStatus.COMPLETE:
            return ProgressResult.done()
        return ProgressResult.failed(description.raw_status or "Execution failed")
