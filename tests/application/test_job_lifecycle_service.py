"""
Test suite for JobLifecycleService.

Exercises the one-running-job-per-release invariant, cancellation requests,
finalization and job history against a real SQLite job store.

System role: Verification of the job lifecycle manager
"""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from release_jobs.application.handlers import (
    ExternalCreateJobHandler,
    JobHandlerRegistry,
    SelectionJobHandler,
)
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.db.models import (
    AuditEventModel,
    AuditOutcome,
    JobModel,
    JobStatus,
    JobType,
)
from release_jobs.core.exceptions import (
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    NoRunningJobError,
    ReleaseNotFoundError,
)
from release_jobs.core.job_progress import JobOutcome


@pytest.fixture
def predicate() -> AsyncMock:
    predicate = AsyncMock()
    predicate.is_selectable = AsyncMock(return_value=True)
    return predicate


@pytest.fixture
def registry(session_factory, lifecycle, predicate, mock_orchestrator, enabled_capabilities) -> JobHandlerRegistry:
    """Registry with the selection and external create handlers."""
    return JobHandlerRegistry(
        lifecycle,
        [
            SelectionJobHandler(session_factory, lifecycle, predicate),
            ExternalCreateJobHandler(session_factory, lifecycle, mock_orchestrator, enabled_capabilities),
        ],
    )


async def _count_jobs(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(JobModel))
        return result.scalar_one()


class TestStartJob:
    """Test suite for JobLifecycleService.start_job()."""

    async def test_start_job_should_create_running_job_with_initial_state(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test a started job is running at 0% with one message and an open audit event."""
        # Arrange
        await seed("R001", cases=2)

        # Act
        state = await lifecycle.start_job("R001", JobType.SELECTION)

        # Assert
        job = state.running_job
        assert state.release_key == "R001"
        assert job is not None
        assert job.job_type is JobType.SELECTION
        assert job.status is JobStatus.RUNNING
        assert job.percent_done == 0
        assert job.requested_cancellation is False
        assert job.messages == ["Created"]
        assert job.initial_todo_count == 2
        assert job.audit_event_id is not None

    async def test_start_job_should_open_audit_event_as_serious_failure(
        self, lifecycle: JobLifecycleService, registry, seed, session_factory
    ) -> None:
        """Test the audit event reads as incomplete until the job finishes."""
        # Arrange
        seeded = await seed("R001")

        # Act
        state = await lifecycle.start_job("R001", JobType.SELECTION)

        # Assert
        async with session_factory() as session:
            event = await session.get(AuditEventModel, state.running_job.audit_event_id)
        assert event.release_id == seeded.release_id
        assert event.action_category == "E"
        assert event.action_description == "Ran specimen selection"
        assert event.outcome == AuditOutcome.SERIOUS_FAILURE
        assert event.completed_at is None
        assert event.details == {"errorMessage": "Audit entry not completed"}

    async def test_start_job_should_raise_when_release_missing(
        self, lifecycle: JobLifecycleService, registry
    ) -> None:
        """Test starting a job for an unknown release raises ReleaseNotFoundError."""
        # Act & Assert
        with pytest.raises(ReleaseNotFoundError):
            await lifecycle.start_job("NOPE", JobType.SELECTION)

    async def test_start_job_should_raise_when_no_handler_registered(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test a job type without a handler is refused before touching the store."""
        # Arrange
        await seed("R001")

        # Act & Assert
        with pytest.raises(ValueError, match="No handler registered"):
            await lifecycle.start_job("R001", JobType.EXTERNAL_EXECUTION)

    async def test_second_job_for_release_should_be_refused(
        self, lifecycle: JobLifecycleService, registry, seed, session_factory, mock_orchestrator
    ) -> None:
        """Test a release with a running job refuses any other job and creates no row."""
        # Arrange
        await seed("R001", cases=1)
        first = await lifecycle.start_job("R001", JobType.SELECTION)

        # Act
        with pytest.raises(JobAlreadyRunningError) as exc_info:
            await lifecycle.start_job(
                "R001",
                JobType.EXTERNAL_CREATE,
                {"template_location": "https://templates.example.com/access-point.yaml"},
            )

        # Assert
        assert str(first.running_job.id) in exc_info.value.details["running_job_ids"]
        assert await _count_jobs(session_factory) == 1
        mock_orchestrator.trigger_create.assert_not_called()

    async def test_concurrent_starts_should_admit_exactly_one(
        self, lifecycle: JobLifecycleService, registry, seed, session_factory
    ) -> None:
        """Test concurrent starts for one release: one succeeds, the rest fail."""
        # Arrange
        await seed("R001", cases=1)

        # Act
        results = await asyncio.gather(
            *(lifecycle.start_job("R001", JobType.SELECTION) for _ in range(4)),
            return_exceptions=True,
        )

        # Assert
        started = [result for result in results if not isinstance(result, BaseException)]
        refused = [result for result in results if isinstance(result, JobAlreadyRunningError)]
        assert len(started) == 1
        assert len(refused) == 3
        assert await _count_jobs(session_factory) == 1

    async def test_jobs_for_different_releases_should_run_side_by_side(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test the invariant is per release."""
        # Arrange
        await seed("R001")
        await seed("R002")

        # Act
        await lifecycle.start_job("R001", JobType.SELECTION)
        await lifecycle.start_job("R002", JobType.SELECTION)

        # Assert
        running = await lifecycle.list_running_jobs()
        assert sorted(job.release_key for job in running) == ["R001", "R002"]

    async def test_new_job_should_be_allowed_after_previous_finished(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test a terminal job no longer blocks the release."""
        # Arrange
        await seed("R001")
        first = await lifecycle.start_job("R001", JobType.SELECTION)
        await lifecycle.finalize_job(first.running_job.id, JobOutcome.FAILED)

        # Act
        second = await lifecycle.start_job("R001", JobType.SELECTION)

        # Assert
        assert second.running_job.id != first.running_job.id


class TestListRunningJobs:
    """Test suite for JobLifecycleService.list_running_jobs()."""

    async def test_list_running_jobs_should_return_empty_when_idle(
        self, lifecycle: JobLifecycleService
    ) -> None:
        """Test an empty store yields no running jobs."""
        # Act & Assert
        assert await lifecycle.list_running_jobs() == []

    async def test_list_running_jobs_should_include_release_and_audit_start(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test each summary carries what the worker loop needs."""
        # Arrange
        await seed("R001")
        state = await lifecycle.start_job("R001", JobType.SELECTION)

        # Act
        running = await lifecycle.list_running_jobs()

        # Assert
        assert len(running) == 1
        summary = running[0]
        assert summary.job_id == state.running_job.id
        assert summary.job_type is JobType.SELECTION
        assert summary.release_key == "R001"
        assert summary.requested_cancellation is False
        assert summary.audit_event_id == state.running_job.audit_event_id
        assert summary.audit_event_started is not None

    async def test_list_running_jobs_should_exclude_terminal_jobs(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test finalized jobs drop out of the running set."""
        # Arrange
        await seed("R001")
        state = await lifecycle.start_job("R001", JobType.SELECTION)
        await lifecycle.finalize_job(state.running_job.id, JobOutcome.SUCCEEDED)

        # Act & Assert
        assert await lifecycle.list_running_jobs() == []


class TestRequestCancellation:
    """Test suite for JobLifecycleService.request_cancellation()."""

    async def test_request_cancellation_should_flag_job_and_keep_it_running(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test cancellation only sets the flag; the worker ends the job."""
        # Arrange
        await seed("R001")
        await lifecycle.start_job("R001", JobType.SELECTION)

        # Act
        state = await lifecycle.request_cancellation("R001")

        # Assert
        assert state.running_job.requested_cancellation is True
        assert state.running_job.status is JobStatus.RUNNING
        assert state.running_job.messages[-1] == "Cancellation requested"

    async def test_request_cancellation_should_be_idempotent(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test repeated requests leave one message and the flag set."""
        # Arrange
        await seed("R001")
        await lifecycle.start_job("R001", JobType.SELECTION)

        # Act
        await lifecycle.request_cancellation("R001")
        state = await lifecycle.request_cancellation("R001")

        # Assert
        assert state.running_job.requested_cancellation is True
        assert state.running_job.messages.count("Cancellation requested") == 1

    async def test_request_cancellation_should_raise_when_nothing_running(
        self, lifecycle: JobLifecycleService, seed
    ) -> None:
        """Test cancelling a release without a running job raises NoRunningJobError."""
        # Arrange
        await seed("R001")

        # Act & Assert
        with pytest.raises(NoRunningJobError):
            await lifecycle.request_cancellation("R001")

    async def test_request_cancellation_should_raise_when_release_missing(
        self, lifecycle: JobLifecycleService
    ) -> None:
        """Test cancelling an unknown release raises ReleaseNotFoundError."""
        # Act & Assert
        with pytest.raises(ReleaseNotFoundError):
            await lifecycle.request_cancellation("NOPE")


class TestFinalizeJob:
    """Test suite for JobLifecycleService.finalize_job()."""

    @pytest.mark.parametrize(
        ("outcome", "status", "audit_outcome"),
        [
            (JobOutcome.SUCCEEDED, JobStatus.SUCCEEDED, AuditOutcome.SUCCESS),
            (JobOutcome.FAILED, JobStatus.FAILED, AuditOutcome.SERIOUS_FAILURE),
            (JobOutcome.CANCELLED, JobStatus.CANCELLED, AuditOutcome.MINOR_FAILURE),
        ],
    )
    async def test_finalize_job_should_set_terminal_state_and_complete_audit(
        self,
        lifecycle: JobLifecycleService,
        registry,
        seed,
        session_factory,
        outcome: JobOutcome,
        status: JobStatus,
        audit_outcome: AuditOutcome,
    ) -> None:
        """Test finalization writes 100%, the end time, the status and the audit outcome."""
        # Arrange
        await seed("R001")
        state = await lifecycle.start_job("R001", JobType.SELECTION)
        job_id = state.running_job.id

        # Act
        detail = await lifecycle.finalize_job(job_id, outcome, details={"reason": "because"})

        # Assert
        assert detail.status is status
        assert detail.percent_done == 100
        assert detail.ended is not None
        assert detail.messages[-1] == f"Job {outcome.value}"

        async with session_factory() as session:
            event = await session.get(AuditEventModel, detail.audit_event_id)
        assert event.outcome == audit_outcome
        assert event.completed_at is not None
        assert event.occurred_duration_seconds is None
        assert event.details == {"jobId": str(job_id), "reason": "because"}

    async def test_finalize_job_should_run_merge_only_on_success(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test the result merge is withheld from failed and cancelled jobs."""
        # Arrange
        await seed("R001")
        await seed("R002")
        first = await lifecycle.start_job("R001", JobType.SELECTION)
        second = await lifecycle.start_job("R002", JobType.SELECTION)
        merge = AsyncMock()

        # Act
        await lifecycle.finalize_job(first.running_job.id, JobOutcome.CANCELLED, result_merge=merge)
        await lifecycle.finalize_job(second.running_job.id, JobOutcome.SUCCEEDED, result_merge=merge)

        # Assert
        merge.assert_awaited_once()
        merged_job = merge.await_args.args[1]
        assert merged_job.id == second.running_job.id

    async def test_success_after_cancellation_request_should_be_cancelled(
        self, lifecycle: JobLifecycleService, registry, seed, session_factory
    ) -> None:
        """Test a job asked to cancel never merges its results, even when it reports success."""
        # Arrange
        await seed("R001")
        state = await lifecycle.start_job("R001", JobType.SELECTION)
        await lifecycle.request_cancellation("R001")
        merge = AsyncMock()

        # Act
        detail = await lifecycle.finalize_job(state.running_job.id, JobOutcome.SUCCEEDED, result_merge=merge)

        # Assert
        merge.assert_not_awaited()
        assert detail.status is JobStatus.CANCELLED
        assert detail.messages[-1] == "Job cancelled"

        async with session_factory() as session:
            event = await session.get(AuditEventModel, detail.audit_event_id)
        assert event.outcome == AuditOutcome.MINOR_FAILURE

    async def test_finalize_job_should_refuse_terminal_job(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test no transition leaves a terminal state."""
        # Arrange
        await seed("R001")
        state = await lifecycle.start_job("R001", JobType.SELECTION)
        await lifecycle.finalize_job(state.running_job.id, JobOutcome.FAILED)

        # Act & Assert
        with pytest.raises(JobNotRunningError):
            await lifecycle.finalize_job(state.running_job.id, JobOutcome.SUCCEEDED)

        job = await lifecycle.get_job(state.running_job.id)
        assert job.status is JobStatus.FAILED

    async def test_finalize_job_should_raise_when_job_missing(self, lifecycle: JobLifecycleService) -> None:
        """Test finalizing an unknown job raises JobNotFoundError."""
        # Act & Assert
        with pytest.raises(JobNotFoundError):
            await lifecycle.finalize_job(uuid.uuid4(), JobOutcome.SUCCEEDED)


class TestJobQueries:
    """Test suite for get_job(), get_release_job_state() and get_previous_jobs()."""

    async def test_get_job_should_raise_when_missing(self, lifecycle: JobLifecycleService) -> None:
        """Test an unknown job id raises JobNotFoundError."""
        # Act & Assert
        with pytest.raises(JobNotFoundError):
            await lifecycle.get_job(uuid.uuid4())

    async def test_get_release_job_state_should_report_idle_release(
        self, lifecycle: JobLifecycleService, seed
    ) -> None:
        """Test a release without jobs reports no running job and no selection."""
        # Arrange
        await seed("R001")

        # Act
        state = await lifecycle.get_release_job_state("R001")

        # Assert
        assert state.running_job is None
        assert state.selected_specimen_count == 0

    async def test_get_previous_jobs_should_page_newest_first(
        self, lifecycle: JobLifecycleService, registry, seed
    ) -> None:
        """Test job history pages finished jobs only, newest first."""
        # Arrange
        await seed("R001")
        job_ids = []
        for _ in range(3):
            state = await lifecycle.start_job("R001", JobType.SELECTION)
            job_ids.append(state.running_job.id)
            if len(job_ids) < 3:
                await lifecycle.finalize_job(state.running_job.id, JobOutcome.SUCCEEDED)

        # Act
        first_page = await lifecycle.get_previous_jobs("R001", page=1, page_size=2)
        second_page = await lifecycle.get_previous_jobs("R001", page=2, page_size=2)

        # Assert
        assert first_page.total == 2
        assert first_page.has_more is False
        assert [job.id for job in first_page.items] == [job_ids[1], job_ids[0]]
        assert job_ids[2] not in [job.id for job in first_page.items]
        assert second_page.items == []

    async def test_get_previous_jobs_should_reject_non_positive_paging(
        self, lifecycle: JobLifecycleService, seed
    ) -> None:
        """Test invalid paging arguments raise ValueError."""
        # Arrange
        await seed("R001")

        # Act & Assert
        with pytest.raises(ValueError):
            await lifecycle.get_previous_jobs("R001", page=0)
