"""
Job error handling for API endpoints.

Decorator translating the service's exception hierarchy into HTTP errors
with consistent logging.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException, status
from pydantic import ValidationError

from release_jobs.core.exceptions import (
    ExecutionServiceNotInstalledError,
    ExternalServiceError,
    ExternalServiceNotEnabledError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotRunningError,
    NoRunningJobError,
    ReleaseJobsException,
    ReleaseNeedsActivationError,
    ReleaseNotFoundError,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _status_for(error: ReleaseJobsException) -> int:
    if isinstance(error, (ReleaseNotFoundError, JobNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (JobAlreadyRunningError, NoRunningJobError, JobNotRunningError)):
        return status.HTTP_409_CONFLICT
    if isinstance(error, ReleaseNeedsActivationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, (ExternalServiceNotEnabledError, ExecutionServiceNotInstalledError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(error, ExternalServiceError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def handle_job_errors(func: F) -> F:
    """
    Decorator mapping job errors to HTTPExceptions.

    - Missing release or job: 404
    - Running-job invariant and state conflicts: 409
    - Invalid input or inactive release: 400 / 422
    - External service unavailable: 503, external call failed: 502
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)

        except ReleaseJobsException as e:
            code = _status_for(e)
            log = logger.error if code >= 500 else logger.warning
            log(f"{__name__}:{func.__name__} - {e.message}", extra={"status_code": code})
            raise HTTPException(
                status_code=code,
                detail={"error": e.message, "details": e.details},
            ) from e

        except ValidationError as e:
            logger.warning(f"{__name__}:{func.__name__} - Invalid job input", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=e.errors(include_url=False, include_context=False),
            ) from e

        except ValueError as e:
            logger.warning(f"{__name__}:{func.__name__} - Invalid request", extra={"error": str(e)})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return wrapper  # type: ignore
