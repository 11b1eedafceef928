"""
FastAPI dependency factories.

Dependencies: release_jobs.dependencies, release_jobs.configs
System role: Service injection for the HTTP surface
"""

from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.configs import Settings, get_settings
from release_jobs.dependencies import get_service_cache


def get_settings_dependency() -> Settings:
    """Get settings singleton."""
    return get_settings()


def get_job_lifecycle_service() -> JobLifecycleService:
    """
    Get the lifecycle manager with every job handler registered.

    Returns:
        JobLifecycleService: Shared lifecycle manager
    """
    return get_service_cache().lifecycle
