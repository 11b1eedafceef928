"""
Worker loop configuration settings.

Cadence and circuit-breaker parameters for the job worker process.

Dependencies: pydantic, pydantic_settings
System role: Worker loop tuning
"""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from release_jobs.configs.base import BaseSettings


class WorkerSettings(BaseSettings):
    """Job worker cadence configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="JOB_WORKER_",
        case_sensitive=False,
        extra="ignore",
    )

    chunk_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Idle sleep, minimum cycle length and per-job progress time budget",
    )
    failure_cooldown_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Sleep after a failed cycle before retrying",
    )
    max_consecutive_failures: int = Field(
        default=1000,
        ge=1,
        description="Consecutive failed cycles tolerated before the process exits",
    )
    idle_log_interval_seconds: float = Field(
        default=3600.0,
        ge=0,
        description="Minimum interval between 'no running jobs' log lines",
    )
