"""
Job CRUD operations.

Running-job queries behind the one-running-job-per-release invariant,
job history paging, and the selection job's work queue and specimen
accumulator.

Dependencies: sqlalchemy, release_jobs.boundary.db.models
System role: Job persistence operations for the lifecycle manager and handlers
"""

from datetime import datetime
from typing import Iterable, NamedTuple, Sequence
from uuid import UUID

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from release_jobs.boundary.db.CRUD.base_crud import BaseCRUD
from release_jobs.boundary.db.models.audit_event_model import AuditEventModel
from release_jobs.boundary.db.models.job_model import (
    JobModel,
    JobStatus,
    select_job_selected_specimens,
    select_job_todo_cases,
)
from release_jobs.boundary.db.models.release_model import ReleaseModel


class RunningJobRow(NamedTuple):
    """A running job joined with its release key and audit start time."""

    job: JobModel
    release_key: str
    audit_started: datetime | None


class JobCRUD(BaseCRUD[JobModel]):
    """
    CRUD operations for JobModel.

    Queries on the root model return the concrete subtype of each row.
    """

    def __init__(self) -> None:
        """Initialize JobCRUD with JobModel."""
        super().__init__(JobModel)

    async def get_running_for_release(
        self,
        session: AsyncSession,
        release_id: UUID,
        for_update: bool = False,
    ) -> Sequence[JobModel]:
        """
        Retrieve the running job(s) of a release.

        More than one row is never expected; the list form lets callers
        report every conflicting id.

        Args:
            session: Async database session
            release_id: Release UUID
            for_update: Lock the returned rows

        Returns:
            Sequence of running JobModels
        """
        stmt = select(JobModel).where(
            JobModel.release_id == release_id,
            JobModel.status == JobStatus.RUNNING,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_running(self, session: AsyncSession) -> Sequence[RunningJobRow]:
        """
        Retrieve every running job with its release key and audit start time.

        Args:
            session: Async database session

        Returns:
            Sequence of RunningJobRow, oldest job first
        """
        stmt = (
            select(JobModel, ReleaseModel.release_key, AuditEventModel.occurred_at)
            .join(ReleaseModel, ReleaseModel.id == JobModel.release_id)
            .outerjoin(AuditEventModel, AuditEventModel.id == JobModel.audit_event_id)
            .where(JobModel.status == JobStatus.RUNNING)
            .order_by(JobModel.started)
        )
        result = await session.execute(stmt)
        return [RunningJobRow(job, release_key, started) for job, release_key, started in result.all()]

    async def get_for_release(
        self,
        session: AsyncSession,
        release_id: UUID,
        limit: int,
        offset: int = 0,
    ) -> Sequence[JobModel]:
        """
        Retrieve a page of a release's jobs, newest first.

        The running job, if any, is not part of the history.

        Args:
            session: Async database session
            release_id: Release UUID
            limit: Page size
            offset: Rows to skip

        Returns:
            Sequence of JobModels
        """
        stmt = (
            select(JobModel)
            .where(JobModel.release_id == release_id, JobModel.status != JobStatus.RUNNING)
            .order_by(JobModel.started.desc(), JobModel.id)
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_for_release(self, session: AsyncSession, release_id: UUID) -> int:
        """Count the release's finished jobs."""
        stmt = (
            select(func.count())
            .select_from(JobModel)
            .where(JobModel.release_id == release_id, JobModel.status != JobStatus.RUNNING)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    # Selection job work queue

    async def add_todo_cases(
        self,
        session: AsyncSession,
        job_id: UUID,
        case_ids: Iterable[UUID],
    ) -> int:
        """
        Queue cases for a selection job.

        Returns:
            int: Number of cases queued
        """
        rows = [{"job_id": job_id, "case_id": case_id} for case_id in set(case_ids)]
        if rows:
            await session.execute(insert(select_job_todo_cases), rows)
        return len(rows)

    async def peek_todo_case_id(self, session: AsyncSession, job_id: UUID) -> UUID | None:
        """Return the next queued case id in a stable order, or None when drained."""
        stmt = (
            select(select_job_todo_cases.c.case_id)
            .where(select_job_todo_cases.c.job_id == job_id)
            .order_by(select_job_todo_cases.c.case_id)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def remove_todo_case(self, session: AsyncSession, job_id: UUID, case_id: UUID) -> bool:
        """Remove a processed case from the queue; True if it was queued."""
        stmt = delete(select_job_todo_cases).where(
            select_job_todo_cases.c.job_id == job_id,
            select_job_todo_cases.c.case_id == case_id,
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def count_todo_cases(self, session: AsyncSession, job_id: UUID) -> int:
        """Count the cases still queued for a selection job."""
        stmt = select(func.count()).select_from(select_job_todo_cases).where(
            select_job_todo_cases.c.job_id == job_id
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    # Selection job accumulator

    async def add_selected_specimens(
        self,
        session: AsyncSession,
        job_id: UUID,
        specimen_ids: Iterable[UUID],
    ) -> int:
        """
        Add specimens to a selection job's accumulator, ignoring ones already present.

        Returns:
            int: Number of specimens newly added
        """
        wanted = set(specimen_ids)
        if not wanted:
            return 0
        existing = await session.execute(
            select(select_job_selected_specimens.c.specimen_id).where(
                select_job_selected_specimens.c.job_id == job_id,
                select_job_selected_specimens.c.specimen_id.in_(wanted),
            )
        )
        new_ids = wanted - set(existing.scalars().all())
        if new_ids:
            await session.execute(
                insert(select_job_selected_specimens),
                [{"job_id": job_id, "specimen_id": specimen_id} for specimen_id in new_ids],
            )
        return len(new_ids)

    async def get_selected_specimen_ids(self, session: AsyncSession, job_id: UUID) -> Sequence[UUID]:
        """Return every specimen id accumulated by a selection job."""
        stmt = select(select_job_selected_specimens.c.specimen_id).where(
            select_job_selected_specimens.c.job_id == job_id
        )
        result = await session.execute(stmt)
        return result.scalars().all()


job_crud = JobCRUD()
