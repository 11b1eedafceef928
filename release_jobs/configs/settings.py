"""
Unified application settings.

Aggregates all configuration groups into a single Settings class shared by
the worker process and the HTTP surface.

Dependencies: All config modules
System role: Central configuration aggregator for the application
"""

from functools import lru_cache

from release_jobs.configs.aws import AwsSettings
from release_jobs.configs.base import BaseSettings
from release_jobs.configs.database import DatabaseSettings
from release_jobs.configs.worker import WorkerSettings


class Settings(BaseSettings):
    """Unified application settings aggregating all config modules."""

    database: DatabaseSettings = DatabaseSettings()
    worker: WorkerSettings = WorkerSettings()
    aws: AwsSettings = AwsSettings()


@lru_cache
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Environment variables and .env are read once, on first call.

    Returns:
        Settings: Application settings instance

    Usage:
        from release_jobs.configs import get_settings
        settings = get_settings()
    """
    return Settings()
