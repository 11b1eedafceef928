"""Job worker process."""

from release_jobs.workers.job_worker import JobWorker, WorkerExitReason
from release_jobs.workers.stop_token import StopToken

__all__ = ["JobWorker", "WorkerExitReason", "StopToken"]
