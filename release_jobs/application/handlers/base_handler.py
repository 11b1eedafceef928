"""
Job handler base class.

A handler owns one job kind: it builds the job's type-specific fields when
the lifecycle manager starts the job, advances the job one progress step
at a time for the worker loop, and finishes it through the lifecycle
manager.

Dependencies: sqlalchemy, pydantic, release_jobs.application.services
System role: Contract between the worker loop and each job kind
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from release_jobs.application.services.job_lifecycle_service import (
    JobLifecycleService,
    ResultMerge,
)
from release_jobs.boundary.db.CRUD.job_crud import job_crud
from release_jobs.boundary.db.models.job_model import JobModel, JobStatus, JobType
from release_jobs.boundary.db.models.release_model import ReleaseModel
from release_jobs.core.exceptions import JobNotFoundError, JobNotRunningError
from release_jobs.core.job_progress import JobOutcome, ProgressResult
from release_jobs.models.job import JobDetail

logger = logging.getLogger(__name__)

JobModelT = TypeVar("JobModelT", bound=JobModel)


class JobHandler(ABC, Generic[JobModelT]):
    """
    Base class of all job handlers.

    Class attributes:
        job_type: Job kind handled
        job_model: Concrete ORM model of the job kind
        input_model: Pydantic model validating the start input
        audit_description: Description of the audit event opened at start
        initial_message: First entry of the job's message log
    """

    job_type: ClassVar[JobType]
    job_model: ClassVar[type[JobModel]]
    input_model: ClassVar[type[BaseModel]]
    audit_description: ClassVar[str]
    initial_message: ClassVar[str] = "Created"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: JobLifecycleService,
    ) -> None:
        """
        Args:
            session_factory: Factory each checkpoint opens its transaction from
            lifecycle: Lifecycle manager used to finalize jobs
        """
        self._session_factory = session_factory
        self._lifecycle = lifecycle

    def parse_input(self, job_input: BaseModel | dict[str, Any] | None) -> BaseModel:
        """Validate start input against the handler's input model."""
        if isinstance(job_input, self.input_model):
            return job_input
        if isinstance(job_input, BaseModel):
            job_input = job_input.model_dump()
        return self.input_model.model_validate(job_input or {})

    @abstractmethod
    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> JobModelT:
        """
        Create the unsaved job row with its type-specific fields.

        Runs inside the start transaction, after the invariant check.
        Raising aborts the start and creates nothing.
        """

    async def after_insert(self, session: AsyncSession, job: JobModelT, release: ReleaseModel) -> None:
        """Hook run in the start transaction once the job row has its id."""
        return None

    @abstractmethod
    async def progress(self, job_id: UUID, time_budget: float) -> ProgressResult:
        """
        Advance the job by one step.

        Args:
            job_id: Running job to advance
            time_budget: Seconds the step may spend before yielding

        Returns:
            ProgressResult: MORE_WORK, or DONE with the handler-determined outcome
        """

    def result_merge(self) -> ResultMerge | None:
        """Merge applied to the release when the job succeeds; none by default."""
        return None

    async def finish(
        self,
        job_id: UUID,
        was_successful: bool,
        was_cancelled: bool,
        failure_reason: str | None = None,
    ) -> JobDetail:
        """
        Finalize the job through the lifecycle manager.

        Args:
            job_id: Job to finish
            was_successful: Handler-determined outcome
            was_cancelled: The job ended because of a cancellation request
            failure_reason: Reason recorded in the audit event

        Returns:
            JobDetail: The terminal job
        """
        outcome = JobOutcome.from_flags(was_successful, was_cancelled)
        details = {"reason": failure_reason} if failure_reason else None
        return await self._lifecycle.finalize_job(
            job_id,
            outcome,
            result_merge=self.result_merge(),
            details=details,
        )

    async def _load_running_job(self, session: AsyncSession, job_id: UUID) -> JobModelT:
        """
        Load and lock the job, checking its kind and that it is still running.

        Raises:
            JobNotFoundError: If the id does not resolve to a job of this kind
            JobNotRunningError: If the job is already terminal
        """
        job = await job_crud.get_by_id(session, job_id, for_update=True)
        if job is None or not isinstance(job, self.job_model):
            raise JobNotFoundError(job_id, expected_type=self.job_type.value)
        if job.status is not JobStatus.RUNNING:
            raise JobNotRunningError(job_id, job.status.value)
        return job
