"""
Database boundary: ORM models, connection management and CRUD.

Importing this package registers every model with Base.metadata.
"""

from release_jobs.boundary.db.base import Base
from release_jobs.boundary.db import models  # noqa: F401

__all__ = ["Base"]
