"""
External orchestration contract.

Result types shared by the CloudFormation and Step Functions clients, and
the protocols the external job handlers depend on. Raw provider statuses
are reduced to ExternalStatus here so handlers never see provider strings
except for logging.

Dependencies: pydantic
System role: Interface between job handlers and external services
"""

import enum
from typing import Any, Protocol

from pydantic import BaseModel, Field


class ExternalStatus(str, enum.Enum):
    """Provider-neutral state of an external resource or execution."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"
    NOT_FOUND = "not_found"


class ResourceDescription(BaseModel):
    """State of an external resource (CloudFormation stack)."""

    status: ExternalStatus
    raw_status: str | None = None
    status_reason: str | None = None


class ItemCounts(BaseModel):
    """Sub-unit counts reported by a distributed execution."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: int = 0
    timed_out: int = 0

    @property
    def done(self) -> int:
        return self.succeeded + self.failed + self.aborted + self.timed_out


class ExecutionDescription(BaseModel):
    """State of an external execution (Step Functions)."""

    status: ExternalStatus
    raw_status: str | None = None
    item_counts: ItemCounts | None = Field(default=None)


class ResourceOrchestrator(Protocol):
    """Creates, deletes and describes per-release external resources."""

    def resource_name_for_release(self, release_key: str) -> str: ...

    async def trigger_create(self, name: str, template_location: str) -> str: ...

    async def trigger_delete(self, handle: str) -> None: ...

    async def find_by_name(self, name: str) -> str: ...

    async def describe(self, handle: str, success_status: str) -> ResourceDescription: ...


class ExecutionService(Protocol):
    """Starts and describes external executions."""

    async def start(self, state_machine_arn: str, execution_input: dict[str, Any]) -> str: ...

    async def describe(self, handle: str) -> ExecutionDescription: ...
