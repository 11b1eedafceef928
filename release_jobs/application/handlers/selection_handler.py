"""
Selection job handler.

Drains the job's queue of cases one checkpoint at a time. Each checkpoint
is its own transaction: take the next case, evaluate every specimen under
it with the selection predicate, add the passing specimens to the job's
accumulator, remove the case from the queue and update percent-done. A
crash loses at most the checkpoint in flight, and a case is never
evaluated twice because its removal commits with its results.

On success the accumulated specimens replace the release's selection;
a cancelled or failed job leaves the release untouched.

Dependencies: sqlalchemy, release_jobs.boundary.db, release_jobs.core
System role: Handler for JobType.SELECTION
"""

import logging
import time
from typing import Any, Callable, Protocol
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from release_jobs.application.handlers.base_handler import JobHandler
from release_jobs.application.services.job_lifecycle_service import (
    JobLifecycleService,
    ResultMerge,
)
from release_jobs.boundary.db.CRUD.dataset_crud import dataset_crud
from release_jobs.boundary.db.CRUD.job_crud import job_crud
from release_jobs.boundary.db.CRUD.release_crud import release_crud
from release_jobs.boundary.db.models.dataset_model import (
    ArtifactType,
    DatasetCaseModel,
    DatasetSpecimenModel,
)
from release_jobs.boundary.db.models.job_model import JobModel, JobType, SelectionJobModel
from release_jobs.boundary.db.models.release_model import ReleaseModel
from release_jobs.core.job_progress import ProgressResult, queue_percent_done
from release_jobs.core.selection_predicate import SelectionPredicate, SpecimenArtifacts
from release_jobs.models.job import SelectionJobInput

logger = logging.getLogger(__name__)


class ArtifactResolver(Protocol):
    """Finds the artifacts a predicate needs for one specimen."""

    async def resolve(self, session: AsyncSession, specimen: DatasetSpecimenModel) -> SpecimenArtifacts: ...


class DatabaseArtifactResolver:
    """Resolves a specimen's VCF and VCF index from the artifact table."""

    async def resolve(self, session: AsyncSession, specimen: DatasetSpecimenModel) -> SpecimenArtifacts:
        artifacts = await dataset_crud.get_artifacts_for_specimen(session, specimen.id)
        urls = {artifact.artifact_type: artifact.url for artifact in artifacts}
        return SpecimenArtifacts(
            vcf_url=urls.get(ArtifactType.VCF),
            vcf_index_url=urls.get(ArtifactType.VCF_INDEX),
        )


class SelectionJobHandler(JobHandler[SelectionJobModel]):
    """Handler for specimen selection jobs."""

    job_type = JobType.SELECTION
    job_model = SelectionJobModel
    input_model = SelectionJobInput
    audit_description = "Ran specimen selection"
    initial_message = "Created"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lifecycle: JobLifecycleService,
        predicate: SelectionPredicate,
        artifact_resolver: ArtifactResolver | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            session_factory: Factory each checkpoint opens its transaction from
            lifecycle: Lifecycle manager used to finalize jobs
            predicate: Decides which specimens are selected
            artifact_resolver: Artifact lookup; the artifact table by default
            clock: Monotonic clock used for the time budget
        """
        super().__init__(session_factory, lifecycle)
        self._predicate = predicate
        self._artifact_resolver = artifact_resolver or DatabaseArtifactResolver()
        self._clock = clock

    async def build_job(
        self,
        session: AsyncSession,
        release: ReleaseModel,
        job_input: BaseModel | dict[str, Any] | None,
    ) -> SelectionJobModel:
        self.parse_input(job_input)
        return SelectionJobModel(initial_todo_count=0)

    async def after_insert(self, session: AsyncSession, job: SelectionJobModel, release: ReleaseModel) -> None:
        """Queue every case reachable from the release's datasets."""
        case_ids = await dataset_crud.get_case_ids_for_release(session, release.id)
        job.initial_todo_count = await job_crud.add_todo_cases(session, job.id, case_ids)
        logger.info(
            f"{__name__}:after_insert - Queued {job.initial_todo_count} case(s) for job {job.id}",
            extra={"job_id": str(job.id), "release_key": release.release_key},
        )

    async def progress(self, job_id: UUID, time_budget: float) -> ProgressResult:
        """
        Drain the queue until it is empty, cancellation is seen, or the budget is spent.

        At least one checkpoint runs per call, whatever the budget.
        """
        started_at = self._clock()

        async with self._session_factory() as session, session.begin():
            job = await self._load_running_job(session, job_id)
            release = await release_crud.get_by_id(session, job.release_id)
            application_context = dict(release.application_coded or {}) if release else {}

        checkpoints = 0
        while True:
            async with self._session_factory() as session, session.begin():
                result = await self._checkpoint(session, job_id, application_context)
            checkpoints += 1

            if result is not None:
                logger.info(
                    f"{__name__}:progress - Job {job_id} done after {checkpoints} checkpoint(s)",
                    extra={"job_id": str(job_id), "cancelled": result.cancelled},
                )
                return result
            if self._clock() - started_at >= time_budget:
                logger.debug(f"{__name__}:progress - Job {job_id} yielded after {checkpoints} checkpoint(s)")
                return ProgressResult.more_work()

    async def _checkpoint(
        self,
        session: AsyncSession,
        job_id: UUID,
        application_context: dict[str, Any],
    ) -> ProgressResult | None:
        """Process one queued case; returns a result only when the job is done."""
        job = await self._load_running_job(session, job_id)
        if job.requested_cancellation:
            return ProgressResult.cancelled_by_request()

        case_id = await job_crud.peek_todo_case_id(session, job.id)
        if case_id is None:
            return ProgressResult.done()

        case = await dataset_crud.get_case_tree(session, case_id)
        selected = await self._select_from_case(session, application_context, case) if case else []

        await job_crud.add_selected_specimens(session, job.id, selected)
        await job_crud.remove_todo_case(session, job.id, case_id)
        remaining = await job_crud.count_todo_cases(session, job.id)

        job.percent_done = max(job.percent_done, queue_percent_done(job.initial_todo_count or 0, remaining))
        label = case.external_identifier if case else str(case_id)
        job.add_message(f"Processed case {label}: {len(selected)} specimen(s) selected, {remaining} remaining")

        if remaining == 0:
            return ProgressResult.done()
        return None

    async def _select_from_case(
        self,
        session: AsyncSession,
        application_context: dict[str, Any],
        case: DatasetCaseModel,
    ) -> list[UUID]:
        selected: list[UUID] = []
        for patient in case.patients:
            for specimen in patient.specimens:
                artifacts = await self._artifact_resolver.resolve(session, specimen)
                if await self._predicate.is_selectable(application_context, case, patient, specimen, artifacts):
                    selected.append(specimen.id)
        return selected

    def result_merge(self) -> ResultMerge:
        return self._merge_into_release

    @staticmethod
    async def _merge_into_release(session: AsyncSession, job: JobModel) -> None:
        specimen_ids = await job_crud.get_selected_specimen_ids(session, job.id)
        count = await release_crud.replace_selected_specimens(session, job.release_id, specimen_ids)
        job.add_message(f"Selected {count} specimen(s) for the release")
