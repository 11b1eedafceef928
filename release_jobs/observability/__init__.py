"""
Observability module.

Provides logging configuration, correlation id propagation and structured
log helpers for the worker process and the HTTP surface.
"""

from release_jobs.observability.correlation import (
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)
from release_jobs.observability.logger import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
]
