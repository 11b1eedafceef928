"""
Progress signals and percent-done arithmetic shared by all job handlers.

A handler's progress step answers with a ProgressResult; the worker loop
finishes the job when the signal is DONE. Percent-done stays within
[0, 99] while a job runs; only finalization writes 100.

Dependencies: dataclasses, enum, math (stdlib)
System role: Contract between job handlers and the worker loop
"""

import enum
import math
from dataclasses import dataclass

MAX_RUNNING_PERCENT = 99
FINAL_PERCENT = 100


class ProgressSignal(str, enum.Enum):
    """Outcome of a single progress step."""

    MORE_WORK = "more_work"
    DONE = "done"


class JobOutcome(str, enum.Enum):
    """Terminal outcome requested when a job is finalized."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_flags(cls, was_successful: bool, was_cancelled: bool) -> "JobOutcome":
        """Cancellation wins over success; anything else unsuccessful is a failure."""
        if was_cancelled:
            return cls.CANCELLED
        if was_successful:
            return cls.SUCCEEDED
        return cls.FAILED


@dataclass(frozen=True)
class ProgressResult:
    """
    Result of a handler progress step.

    Attributes:
        signal: MORE_WORK to be called again next cycle, DONE to be finished
        succeeded: Outcome the handler determined (meaningful only with DONE)
        cancelled: True when the step observed a cancellation request
        reason: Short human-readable failure reason, recorded in the audit entry
    """

    signal: ProgressSignal
    succeeded: bool = True
    cancelled: bool = False
    reason: str | None = None

    @property
    def is_done(self) -> bool:
        return self.signal is ProgressSignal.DONE

    @classmethod
    def more_work(cls) -> "ProgressResult":
        return cls(ProgressSignal.MORE_WORK)

    @classmethod
    def done(cls) -> "ProgressResult":
        return cls(ProgressSignal.DONE)

    @classmethod
    def failed(cls, reason: str) -> "ProgressResult":
        return cls(ProgressSignal.DONE, succeeded=False, reason=reason)

    @classmethod
    def cancelled_by_request(cls) -> "ProgressResult":
        return cls(ProgressSignal.DONE, succeeded=False, cancelled=True, reason="Cancelled by request")


def queue_percent_done(initial_count: int, remaining_count: int) -> int:
    """
    Percent of a work queue drained, capped below completion.

    Args:
        initial_count: Queue size when the job was created
        remaining_count: Units still queued

    Returns:
        int: floor((initial - remaining) * 99.99 / initial), within [0, 99]
    """
    if initial_count <= 0:
        return 0
    processed = max(0, min(initial_count, initial_count - remaining_count))
    percent = math.floor(processed * 99.99 / initial_count)
    return max(0, min(MAX_RUNNING_PERCENT, percent))


def item_count_percent_done(done_count: int, total_count: int) -> int | None:
    """
    Percent of an external execution's items that reached a terminal state.

    Args:
        done_count: Items succeeded, failed, aborted or timed out
        total_count: Items scheduled

    Returns:
        int | None: ceil(done * 100 / total) clamped to [1, 99], or None when
            the execution reports no items yet
    """
    if total_count <= 0:
        return None
    percent = math.ceil(done_count * 100 / total_count)
    return max(1, min(MAX_RUNNING_PERCENT, percent))
