"""
Job worker loop.

Each cycle lists the running jobs and dispatches one operation per job
concurrently: a cancelled job is finished directly, any other job gets one
progress step (and is finished when the step reports DONE). A sleep of one
chunk is always part of the cycle's wait-set, so a cycle never takes less
than a chunk whether jobs exist or not.

Per-job operations are isolated: one job raising does not affect the
others. An error escaping the cycle itself counts as a failed cycle; the
loop cools down and retries, and gives up once the number of consecutive
failed cycles exceeds the configured ceiling.

Dependencies: asyncio, release_jobs.application, release_jobs.configs
System role: Drives every running job to completion
"""

import asyncio
import enum
import logging
import time
from typing import Awaitable, Callable

from release_jobs.application.handlers.registry import JobHandlerRegistry
from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.configs.worker import WorkerSettings
from release_jobs.models.job import RunningJobSummary
from release_jobs.observability.correlation import set_correlation_id
from release_jobs.observability.log_utils import log_exception_with_context, log_with_context
from release_jobs.workers.stop_token import StopToken

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class WorkerExitReason(str, enum.Enum):
    """Why the worker loop returned."""

    STOP_REQUESTED = "stop_requested"
    FAILURE_CEILING = "failure_ceiling"


class JobWorker:
    """Polling loop advancing every running job."""

    def __init__(
        self,
        lifecycle: JobLifecycleService,
        registry: JobHandlerRegistry,
        settings: WorkerSettings | None = None,
        stop_token: StopToken | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            lifecycle: Source of the running job list
            registry: Handlers by job type
            settings: Cadence and failure ceiling
            stop_token: Checked after every cycle
            sleep: Awaitable sleep (replaced in tests)
            clock: Monotonic clock used to rate-limit idle logging
        """
        self._lifecycle = lifecycle
        self._registry = registry
        self._settings = settings or WorkerSettings()
        self.stop_token = stop_token or StopToken()
        self._sleep = sleep
        self._clock = clock
        self._last_idle_log: float | None = None
        self.consecutive_failures = 0

    async def run(self) -> WorkerExitReason:
        """
        Run cycles until a stop is requested or the failure ceiling is exceeded.

        Returns:
            WorkerExitReason: Why the loop ended
        """
        logger.info(
            f"{__name__}:run - Worker started",
            extra={"chunk_seconds": self._settings.chunk_seconds},
        )
        while True:
            try:
                await self.run_cycle()
                self.consecutive_failures = 0
            except Exception as e:
                self.consecutive_failures += 1
                log_exception_with_context(
                    logger,
                    f"{__name__}:run - Worker cycle failed ({self.consecutive_failures} in a row)",
                    e,
                    consecutive_failures=self.consecutive_failures,
                )
                if self.consecutive_failures > self._settings.max_consecutive_failures:
                    logger.critical(
                        f"{__name__}:run - {self.consecutive_failures} consecutive failed cycles, giving up"
                    )
                    return WorkerExitReason.FAILURE_CEILING
                await self._sleep(self._settings.failure_cooldown_seconds)

            if self.stop_token.stop_requested:
                logger.warning(f"{__name__}:run - Worker stopping: {self.stop_token.reason}")
                return WorkerExitReason.STOP_REQUESTED

    async def run_cycle(self) -> int:
        """
        Run one cycle.

        Returns:
            int: Number of running jobs dispatched
        """
        chunk = self._settings.chunk_seconds
        jobs = await self._lifecycle.list_running_jobs()

        if not jobs:
            self._log_idle()
            await self._sleep(chunk)
            return 0

        self._last_idle_log = None
        log_with_context(
            logger,
            logging.INFO,
            f"{__name__}:run_cycle - Advancing {len(jobs)} running job(s)",
            job_ids=", ".join(str(job.job_id) for job in jobs),
        )
        await asyncio.gather(self._sleep(chunk), *(self._advance(job) for job in jobs))
        return len(jobs)

    async def _advance(self, job: RunningJobSummary) -> None:
        """Dispatch one job's operation for this cycle; never raises."""
        set_correlation_id(str(job.job_id))
        try:
            handler = self._registry.get(job.job_type)

            if job.requested_cancellation:
                log_with_context(
                    logger,
                    logging.INFO,
                    f"{__name__}:_advance - Finishing cancelled {job.job_type.value} job for {job.release_key}",
                    job_id=job.job_id,
                    release_key=job.release_key,
                )
                await handler.finish(job.job_id, was_successful=False, was_cancelled=True)
                return

            result = await handler.progress(job.job_id, self._settings.chunk_seconds)
            if result.is_done:
                await handler.finish(
                    job.job_id,
                    was_successful=result.succeeded,
                    was_cancelled=result.cancelled,
                    failure_reason=result.reason,
                )
        except Exception as e:
            log_exception_with_context(
                logger,
                f"{__name__}:_advance - Job {job.job_id} failed this cycle",
                e,
                job_id=job.job_id,
                job_type=job.job_type.value,
                release_key=job.release_key,
            )

    def _log_idle(self) -> None:
        now = self._clock()
        interval = self._settings.idle_log_interval_seconds
        if self._last_idle_log is None or now - self._last_idle_log >= interval:
            logger.info(f"{__name__}:run_cycle - No running jobs")
            self._last_idle_log = now
