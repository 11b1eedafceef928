"""
Job ORM models.

One row per job instance in a single `jobs` table. The `job_type` column
is the discriminator: loading a row yields the concrete model for its
type, so callers dispatch on a typed tag rather than on class names.

A partial unique index on (release_id) WHERE status = 'running' backs the
one-running-job-per-release invariant at the store level.

Dependencies: sqlalchemy, release_jobs.boundary.db.base
System role: Job record store
"""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from release_jobs.boundary.db.base import Base, TimestampMixin, UUIDMixin, enum_values
from release_jobs.core.clock import utc_now


class JobType(str, enum.Enum):
    """
    Closed set of job kinds.

    SELECTION: Evaluate every case of the release's datasets against the selection predicate
    EXTERNAL_CREATE: Create an external resource (CloudFormation stack) for the release
    EXTERNAL_DELETE: Tear down the release's external resource
    EXTERNAL_EXECUTION: Run an external execution (Step Functions) for the release
    """

    SELECTION = "selection"
    EXTERNAL_CREATE = "external_create"
    EXTERNAL_DELETE = "external_delete"
    EXTERNAL_EXECUTION = "external_execution"


class JobStatus(str, enum.Enum):
    """
    Job states. RUNNING is the only non-terminal state.

    RUNNING: Job is being progressed by the worker
    SUCCEEDED: Job finished and its results were merged
    FAILED: Job ended with an error
    CANCELLED: Job ended on request; results were not merged
    """

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


select_job_todo_cases = Table(
    "select_job_todo_cases",
    Base.metadata,
    Column("job_id", UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True),
    Column("case_id", UUID(as_uuid=True), ForeignKey("dataset_cases.id", ondelete="CASCADE"), primary_key=True),
)

select_job_selected_specimens = Table(
    "select_job_selected_specimens",
    Base.metadata,
    Column("job_id", UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "specimen_id",
        UUID(as_uuid=True),
        ForeignKey("dataset_specimens.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class JobModel(Base, UUIDMixin, TimestampMixin):
    """
    Job ORM model (single-table inheritance root).

    Attributes:
        id: UUID primary key
        job_type: Discriminator selecting the concrete model
        release_id: Owning release
        status: JobStatus; starts RUNNING, never leaves a terminal state
        started: Creation time of the job (UTC)
        ended: Terminal transition time, null while running
        percent_done: 0-99 while running, exactly 100 once terminal
        requested_cancellation: Set by a cancel request, observed cooperatively
        messages: Append-only list of short progress strings
        audit_event_id: Audit event opened at start and completed at the end

    Subtype columns (null for the other types):
        initial_todo_count: SELECTION queue size at creation
        external_template_location: EXTERNAL_CREATE template URL
        external_resource_handle: EXTERNAL_CREATE / EXTERNAL_DELETE stack id
        external_execution_handle: EXTERNAL_EXECUTION execution ARN
    """

    __tablename__ = "jobs"

    job_type: Mapped[JobType] = mapped_column(
        Enum(JobType, native_enum=False, values_callable=enum_values, length=32),
        nullable=False,
    )

    release_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("releases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, native_enum=False, values_callable=enum_values, length=16),
        nullable=False,
        default=JobStatus.RUNNING,
    )

    started: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    ended: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    percent_done: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requested_cancellation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    messages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    audit_event_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("audit_events.id", ondelete="SET NULL"),
        nullable=True,
    )

    initial_todo_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    external_template_location: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    external_resource_handle: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    external_execution_handle: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    __mapper_args__ = {"polymorphic_on": "job_type"}

    def add_message(self, message: str) -> None:
        """Append a progress message (the list is reassigned so the JSON column is flushed)."""
        self.messages = [*(self.messages or []), message]

    def audit_details(self) -> dict[str, Any]:
        """Type-specific values recorded when the job's audit event completes."""
        return {}


class SelectionJobModel(JobModel):
    """Selection job: drains a queue of cases into a set of selected specimens."""

    __mapper_args__ = {"polymorphic_identity": JobType.SELECTION}


class ExternalCreateJobModel(JobModel):
    """External create job: the resource handle is empty until creation is triggered."""

    __mapper_args__ = {"polymorphic_identity": JobType.EXTERNAL_CREATE}

    def audit_details(self) -> dict[str, Any]:
        return {
            "externalTemplateLocation": self.external_template_location,
            "externalResourceHandle": self.external_resource_handle,
        }


class ExternalDeleteJobModel(JobModel):
    """External delete job: the resource handle is known from creation."""

    __mapper_args__ = {"polymorphic_identity": JobType.EXTERNAL_DELETE}

    def audit_details(self) -> dict[str, Any]:
        return {"externalResourceHandle": self.external_resource_handle}


class ExternalExecutionJobModel(JobModel):
    """External execution job: polls a started execution until it terminates."""

    __mapper_args__ = {"polymorphic_identity": JobType.EXTERNAL_EXECUTION}

    def audit_details(self) -> dict[str, Any]:
        return {"externalExecutionHandle": self.external_execution_handle}


JOB_MODELS: dict[JobType, type[JobModel]] = {
    JobType.SELECTION: SelectionJobModel,
    JobType.EXTERNAL_CREATE: ExternalCreateJobModel,
    JobType.EXTERNAL_DELETE: ExternalDeleteJobModel,
    JobType.EXTERNAL_EXECUTION: ExternalExecutionJobModel,
}

Index(
    "uq_jobs_one_running_per_release",
    JobModel.__table__.c.release_id,
    unique=True,
    postgresql_where=text("status = 'running'"),
    sqlite_where=text("status = 'running'"),
)
