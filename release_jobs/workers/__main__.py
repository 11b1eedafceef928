"""
Worker process entry point.

    python -m release_jobs.workers          # long-running loop
    python -m release_jobs.workers --once   # one cycle, then print "done"

SIGINT and SIGTERM request a stop; the loop exits after its current cycle.
The exit code is 0 on a requested stop and 1 when the consecutive failure
ceiling was exceeded.

Dependencies: argparse, asyncio, signal, release_jobs.dependencies
System role: Worker process bootstrap
"""

import argparse
import asyncio
import logging
import signal
import sys

from release_jobs.dependencies import ServiceCache, get_service_cache
from release_jobs.observability.logger import configure_logging
from release_jobs.workers.job_worker import WorkerExitReason
from release_jobs.workers.stop_token import StopToken

logger = logging.getLogger(__name__)

FINISHED_ACKNOWLEDGEMENT = "done"


def _install_signal_handlers(stop_token: StopToken) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_token.request_stop, f"received {sig.name}")
        except NotImplementedError:
            logger.warning(f"{__name__}:_install_signal_handlers - {sig.name} handler unsupported here")


async def run_worker(cache: ServiceCache, once: bool = False) -> int:
    """
    Run the worker until stopped.

    Args:
        cache: Service container
        once: Run a single cycle and acknowledge with "done" on stdout

    Returns:
        int: Process exit code
    """
    stop_token = StopToken()
    _install_signal_handlers(stop_token)
    worker = cache.job_worker(stop_token)

    try:
        if once:
            await worker.run_cycle()
            print(FINISHED_ACKNOWLEDGEMENT, flush=True)
            return 0
        reason = await worker.run()
    finally:
        await cache.dispose()

    return 1 if reason is WorkerExitReason.FAILURE_CEILING else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="release-jobs-worker", description="Advance running release jobs.")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    cache = get_service_cache()
    configure_logging(cache.settings.log_level)
    return asyncio.run(run_worker(cache, once=args.once))


if __name__ == "__main__":
    sys.exit(main())
