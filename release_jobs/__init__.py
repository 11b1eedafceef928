"""Background job orchestration for release data-sharing requests."""

__version__ = "0.1.0"
