"""
Test suite for JobCRUD database operations.

Runs against a per-test SQLite database: running-job queries, the
one-running-job-per-release index, history paging, and the selection
job's work queue and accumulator.

System role: Verification of job persistence layer
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from release_jobs.boundary.db.CRUD.job_crud import JobCRUD
from release_jobs.boundary.db.models import (
    ExternalCreateJobModel,
    JobStatus,
    SelectionJobModel,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def job_crud() -> JobCRUD:
    """Provide JobCRUD instance for testing."""
    return JobCRUD()


async def _add_job(session_factory, model, release_id: uuid.UUID, **fields):
    async with session_factory() as session, session.begin():
        job = model(release_id=release_id, **fields)
        session.add(job)
        await session.flush()
        return job.id


class TestRunningJobs:
    """Test suite for running job queries."""

    async def test_get_running_for_release_ignores_terminal_jobs(
        self, job_crud: JobCRUD, seed, session_factory
    ) -> None:
        # Arrange
        seeded = await seed("R001")
        await _add_job(session_factory, SelectionJobModel, seeded.release_id, status=JobStatus.SUCCEEDED)
        running_id = await _add_job(session_factory, SelectionJobModel, seeded.release_id)

        # Act
        async with session_factory() as session:
            jobs = await job_crud.get_running_for_release(session, seeded.release_id)

        # Assert
        assert [job.id for job in jobs] == [running_id]

    async def test_queries_return_concrete_job_types(self, job_crud: JobCRUD, seed, session_factory) -> None:
        # Arrange
        seeded = await seed("R001")
        await _add_job(
            session_factory,
            ExternalCreateJobModel,
            seeded.release_id,
            external_template_location="https://templates/x.yaml",
        )

        # Act
        async with session_factory() as session:
            jobs = await job_crud.get_running_for_release(session, seeded.release_id)

        # Assert
        assert isinstance(jobs[0], ExternalCreateJobModel)
        assert jobs[0].external_template_location == "https://templates/x.yaml"

    async def test_second_running_job_for_release_is_rejected(self, seed, session_factory) -> None:
        """Test the partial unique index allows one running job per release."""
        # Arrange
        seeded = await seed("R001")
        await _add_job(session_factory, SelectionJobModel, seeded.release_id)

        # Act & Assert
        with pytest.raises(IntegrityError):
            await _add_job(session_factory, ExternalCreateJobModel, seeded.release_id)

    async def test_terminal_jobs_do_not_count_against_index(self, seed, session_factory) -> None:
        seeded = await seed("R001")
        await _add_job(session_factory, SelectionJobModel, seeded.release_id, status=JobStatus.FAILED)
        await _add_job(session_factory, SelectionJobModel, seeded.release_id, status=JobStatus.CANCELLED)

        await _add_job(session_factory, SelectionJobModel, seeded.release_id)

    async def test_get_running_joins_release_key_oldest_first(
        self, job_crud: JobCRUD, seed, session_factory
    ) -> None:
        # Arrange
        first = await seed("R001")
        second = await seed("R002")
        newer = await _add_job(session_factory, SelectionJobModel, first.release_id, started=T0 + timedelta(hours=1))
        older = await _add_job(session_factory, SelectionJobModel, second.release_id, started=T0)

        # Act
        async with session_factory() as session:
            rows = await job_crud.get_running(session)

        # Assert
        assert [(row.job.id, row.release_key) for row in rows] == [(older, "R002"), (newer, "R001")]
        assert all(row.audit_started is None for row in rows)


class TestJobHistory:
    """Test suite for history paging."""

    async def test_get_for_release_pages_newest_first(self, job_crud: JobCRUD, seed, session_factory) -> None:
        # Arrange
        seeded = await seed("R001")
        ids = [
            await _add_job(
                session_factory,
                SelectionJobModel,
                seeded.release_id,
                status=JobStatus.SUCCEEDED,
                started=T0 + timedelta(minutes=i),
            )
            for i in range(3)
        ]

        # Act
        async with session_factory() as session:
            first_page = await job_crud.get_for_release(session, seeded.release_id, limit=2)
            second_page = await job_crud.get_for_release(session, seeded.release_id, limit=2, offset=2)
            total = await job_crud.count_for_release(session, seeded.release_id)

        # Assert
        assert [job.id for job in first_page] == [ids[2], ids[1]]
        assert [job.id for job in second_page] == [ids[0]]
        assert total == 3

    async def test_history_leaves_out_running_job(self, job_crud: JobCRUD, seed, session_factory) -> None:
        # Arrange
        seeded = await seed("R001")
        finished = await _add_job(
            session_factory, SelectionJobModel, seeded.release_id, status=JobStatus.FAILED, started=T0
        )
        await _add_job(session_factory, SelectionJobModel, seeded.release_id, started=T0 + timedelta(hours=1))

        # Act
        async with session_factory() as session:
            history = await job_crud.get_for_release(session, seeded.release_id, limit=10)
            total = await job_crud.count_for_release(session, seeded.release_id)

        # Assert
        assert [job.id for job in history] == [finished]
        assert total == 1


class TestSelectionQueue:
    """Test suite for the selection work queue and accumulator."""

    async def test_queue_drains_in_stable_order(self, job_crud: JobCRUD, seed, session_factory) -> None:
        # Arrange
        seeded = await seed("R001", cases=3)
        job_id = await _add_job(session_factory, SelectionJobModel, seeded.release_id)

        # Act
        async with session_factory() as session, session.begin():
            queued = await job_crud.add_todo_cases(session, job_id, seeded.case_ids + seeded.case_ids[:1])
            drained = []
            while (case_id := await job_crud.peek_todo_case_id(session, job_id)) is not None:
                assert await job_crud.remove_todo_case(session, job_id, case_id) is True
                drained.append(case_id)
            remaining = await job_crud.count_todo_cases(session, job_id)

        # Assert
        assert queued == 3
        assert drained == sorted(seeded.case_ids)
        assert remaining == 0

    async def test_remove_unqueued_case_returns_false(self, job_crud: JobCRUD, seed, session_factory) -> None:
        seeded = await seed("R001", cases=1)
        job_id = await _add_job(session_factory, SelectionJobModel, seeded.release_id)

        async with session_factory() as session, session.begin():
            assert await job_crud.remove_todo_case(session, job_id, seeded.case_ids[0]) is False

    async def test_selected_specimens_are_deduplicated(self, job_crud: JobCRUD, seed, session_factory) -> None:
        # Arrange
        seeded = await seed("R001", cases=2, specimens_per_case=2)
        job_id = await _add_job(session_factory, SelectionJobModel, seeded.release_id)
        first, rest = seeded.specimen_ids[:2], seeded.specimen_ids[1:]

        # Act
        async with session_factory() as session, session.begin():
            added_first = await job_crud.add_selected_specimens(session, job_id, first)
            added_rest = await job_crud.add_selected_specimens(session, job_id, rest)
            added_none = await job_crud.add_selected_specimens(session, job_id, [])
            selected = await job_crud.get_selected_specimen_ids(session, job_id)

        # Assert
        assert (added_first, added_rest, added_none) == (2, 2, 0)
        assert set(selected) == set(seeded.specimen_ids)
