"""API-specific dependencies."""

from .dependencies import get_job_lifecycle_service, get_settings_dependency

__all__ = ["get_job_lifecycle_service", "get_settings_dependency"]
