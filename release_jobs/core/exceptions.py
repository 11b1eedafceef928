"""
Exception hierarchy for the release job orchestration service.

Provides layered exception structure for domain-specific errors.
All exceptions carry a details dict for observability and for the
HTTP error mapping.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any, Iterable
from uuid import UUID


class ReleaseJobsException(Exception):
    """Base exception for all release job orchestration errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ReleaseNotFoundError(ReleaseJobsException):
    """Raised when a release key does not resolve."""

    def __init__(self, release_key: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["release_key"] = release_key
        super().__init__(f"Release not found: {release_key}", details)


class JobNotFoundError(ReleaseJobsException):
    """Raised when a job id does not resolve (or resolves to another job type)."""

    def __init__(
        self,
        job_id: UUID | str,
        expected_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize job not found error.

        Args:
            job_id: ID of the missing job
            expected_type: Job type the caller was looking for, if any
            details: Additional context
        """
        details = details or {}
        details["job_id"] = str(job_id)
        if expected_type:
            details["expected_type"] = expected_type
        super().__init__(f"Job not found: {job_id}", details)


class JobAlreadyRunningError(ReleaseJobsException):
    """Raised when a job is requested for a release that already has one running."""

    def __init__(
        self,
        release_key: str,
        job_ids: Iterable[UUID | str] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize job already running error.

        Args:
            release_key: Release the new job was requested for
            job_ids: IDs of the conflicting running job(s), when known
            details: Additional context
        """
        details = details or {}
        ids = [str(job_id) for job_id in job_ids]
        details["release_key"] = release_key
        details["running_job_ids"] = ids
        message = f"Release {release_key} already has a running job"
        if ids:
            message += f" ({', '.join(ids)})"
        super().__init__(message, details)


class NoRunningJobError(ReleaseJobsException):
    """Raised when cancellation is requested for a release with no running job."""

    def __init__(self, release_key: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["release_key"] = release_key
        super().__init__(f"Release {release_key} has no running job", details)


class JobNotRunningError(ReleaseJobsException):
    """Raised when a terminal job is asked to transition again."""

    def __init__(
        self,
        job_id: UUID | str,
        status: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["job_id"] = str(job_id)
        details["status"] = status
        super().__init__(f"Job {job_id} is not running (status {status})", details)


class ReleaseNeedsActivationError(ReleaseJobsException):
    """Raised when a job kind requires the release to be activated first."""

    def __init__(
        self,
        release_key: str,
        job_description: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["release_key"] = release_key
        super().__init__(
            f"Release {release_key} must be activated before: {job_description}",
            details,
        )


class ExternalServiceError(ReleaseJobsException):
    """Base exception for failures talking to an external orchestration service."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize external service error.

        Args:
            message: Error message
            operation: External operation that failed (create_stack, describe_execution, ...)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class ExternalServiceNotEnabledError(ExternalServiceError):
    """Raised when an external job is requested but cloud access is unavailable."""

    def __init__(self, service: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["service"] = service
        super().__init__(f"{service} is not enabled in this deployment", None, details)


class ExecutionServiceNotInstalledError(ExternalServiceError):
    """Raised when no execution state machine is configured or supplied."""

    pass


class ExternalTriggerError(ExternalServiceError):
    """Raised when an external create, delete or execution could not be triggered."""

    pass


class ExternalResourceNotFoundError(ExternalServiceError):
    """Raised when an external resource expected to exist does not."""

    pass


class UnexpectedCardinalityError(ExternalServiceError):
    """Raised when more than one external resource matches an expected-unique name."""

    def __init__(
        self,
        name: str,
        count: int,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details["name"] = name
        details["count"] = count
        super().__init__(
            f"Expected exactly one external resource named {name}, found {count}",
            operation,
            details,
        )
