"""
Job handler registry.

Closed mapping from job type to handler. Building the registry registers
each handler with the lifecycle manager as the builder of its job type, so
the worker loop and job starts dispatch on the same typed tag.

Dependencies: release_jobs.application
System role: Job type dispatch
"""

from typing import Iterable

from release_jobs.application.handlers.base_handler import JobHandler
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.db.models.job_model import JobType


class JobHandlerRegistry:
    """Handlers keyed by the job type they own."""

    def __init__(self, lifecycle: JobLifecycleService, handlers: Iterable[JobHandler]) -> None:
        """
        Args:
            lifecycle: Lifecycle manager the handlers build jobs for
            handlers: One handler per job type

        Raises:
            ValueError: If two handlers claim the same job type
        """
        self._handlers: dict[JobType, JobHandler] = {}
        for handler in handlers:
            if handler.job_type in self._handlers:
                raise ValueError(f"Duplicate handler for job type {handler.job_type.value}")
            self._handlers[handler.job_type] = handler
            lifecycle.register_builder(handler)

    def get(self, job_type: JobType) -> JobHandler:
        """
        Return the handler of a job type.

        Raises:
            KeyError: If no handler is registered for the type
        """
        try:
            return self._handlers[job_type]
        except KeyError:
            raise KeyError(f"No handler registered for job type {job_type.value}") from None

    def __contains__(self, job_type: JobType) -> bool:
        return job_type in self._handlers

    @property
    def job_types(self) -> list[JobType]:
        return list(self._handlers)
