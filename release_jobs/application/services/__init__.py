"""Application services."""

from release_jobs.application.services.audit_event_service import AuditEventService
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService

__all__ = ["AuditEventService", "JobLifecycleService"]
