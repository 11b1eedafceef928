"""ORM models of the release job store."""

from release_jobs.boundary.db.models.audit_event_model import (
    AuditAction,
    AuditEventModel,
    AuditOutcome,
)
from release_jobs.boundary.db.models.dataset_model import (
    ArtifactModel,
    ArtifactType,
    DatasetCaseModel,
    DatasetModel,
    DatasetPatientModel,
    DatasetSpecimenModel,
)
from release_jobs.boundary.db.models.job_model import (
    ExternalCreateJobModel,
    ExternalDeleteJobModel,
    ExternalExecutionJobModel,
    JobModel,
    JobStatus,
    JobType,
    SelectionJobModel,
    select_job_selected_specimens,
    select_job_todo_cases,
)
from release_jobs.boundary.db.models.release_model import (
    ReleaseModel,
    release_datasets,
    release_selected_specimens,
)

__all__ = [
    "AuditAction",
    "AuditEventModel",
    "AuditOutcome",
    "ArtifactModel",
    "ArtifactType",
    "DatasetModel",
    "DatasetCaseModel",
    "DatasetPatientModel",
    "DatasetSpecimenModel",
    "JobModel",
    "JobStatus",
    "JobType",
    "SelectionJobModel",
    "ExternalCreateJobModel",
    "ExternalDeleteJobModel",
    "ExternalExecutionJobModel",
    "ReleaseModel",
    "release_datasets",
    "release_selected_specimens",
    "select_job_todo_cases",
    "select_job_selected_specimens",
]
