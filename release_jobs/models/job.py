"""
Job domain models and schemas.

Type-specific job inputs, and the read models returned by the lifecycle
manager to the worker loop and the HTTP surface.

Dependencies: pydantic
System role: Job API contracts
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from release_jobs.boundary.db.models.job_model import JobStatus, JobType


class SelectionJobInput(BaseModel):
    """Selection jobs take no input; the queue comes from the release's datasets."""

    model_config = ConfigDict(extra="forbid")


class ExternalCreateJobInput(BaseModel):
    """Input of an external create job."""

    template_location: str = Field(
        min_length=1,
        description="URL of the resource template (e.g. https://bucket.s3.amazonaws.com/template.yaml)",
    )


class ExternalDeleteJobInput(BaseModel):
    """External delete jobs locate the release's resource by its derived name."""

    model_config = ConfigDict(extra="forbid")


class ExternalExecutionJobInput(BaseModel):
    """Input of an external execution job."""

    state_machine_arn: str | None = Field(
        default=None,
        description="State machine to run; the configured default when omitted",
    )
    execution_input: dict[str, Any] = Field(default_factory=dict)


class JobDetail(BaseModel):
    """Full state of one job."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_type: JobType
    status: JobStatus
    percent_done: int
    requested_cancellation: bool
    started: datetime
    ended: datetime | None = None
    messages: list[str] = Field(default_factory=list)
    audit_event_id: uuid.UUID | None = None
    initial_todo_count: int | None = None
    external_template_location: str | None = None
    external_resource_handle: str | None = None
    external_execution_handle: str | None = None


class RunningJobSummary(BaseModel):
    """What the worker loop needs to know about a running job."""

    job_id: uuid.UUID
    job_type: JobType
    release_key: str
    requested_cancellation: bool
    audit_event_id: uuid.UUID | None = None
    audit_event_started: datetime | None = None


class ReleaseJobState(BaseModel):
    """Job-related state of a release, returned after start and cancel requests."""

    release_key: str
    running_job: JobDetail | None = None
    selected_specimen_count: int = 0
