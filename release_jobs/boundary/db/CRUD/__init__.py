"""Per-model CRUD singletons."""

from release_jobs.boundary.db.CRUD.audit_event_crud import audit_event_crud
from release_jobs.boundary.db.CRUD.dataset_crud import dataset_crud
from release_jobs.boundary.db.CRUD.job_crud import job_crud
from release_jobs.boundary.db.CRUD.release_crud import release_crud

__all__ = ["audit_event_crud", "dataset_crud", "job_crud", "release_crud"]
