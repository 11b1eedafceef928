"""Job type handlers: one per job kind, dispatched by JobType."""

from release_jobs.application.handlers.base_handler import JobHandler
from release_jobs.application.handlers.external_execution_handler import ExternalExecutionJobHandler
from release_jobs.application.handlers.external_resource_handler import (
    ExternalCreateJobHandler,
    ExternalDeleteJobHandler,
)
from release_jobs.application.handlers.registry import JobHandlerRegistry
from release_jobs.application.handlers.selection_handler import SelectionJobHandler

__all__ = [
    "JobHandler",
    "JobHandlerRegistry",
    "SelectionJobHandler",
    "ExternalCreateJobHandler",
    "ExternalDeleteJobHandler",
    "ExternalExecutionJobHandler",
]
