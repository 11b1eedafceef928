"""
Dataset CRUD operations.

Read paths used by the selection job: the cases reachable from a release,
a case's patient/specimen tree, and a specimen's artifacts.

Dependencies: sqlalchemy, release_jobs.boundary.db.models
System role: Dataset persistence operations for specimen selection
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from release_jobs.boundary.db.CRUD.base_crud import BaseCRUD
from release_jobs.boundary.db.models.dataset_model import (
    ArtifactModel,
    DatasetCaseModel,
    DatasetPatientModel,
)
from release_jobs.boundary.db.models.release_model import release_datasets


class DatasetCRUD(BaseCRUD[DatasetCaseModel]):
    """CRUD operations over dataset cases and their trees."""

    def __init__(self) -> None:
        super().__init__(DatasetCaseModel)

    async def get_case_ids_for_release(
        self,
        session: AsyncSession,
        release_id: UUID,
    ) -> Sequence[UUID]:
        """
        Return the ids of every case in every dataset linked to the release.

        Args:
            session: Async database session
            release_id: Release UUID

        Returns:
            Sequence of case UUIDs (distinct)
        """
        stmt = (
            select(DatasetCaseModel.id)
            .join(release_datasets, release_datasets.c.dataset_id == DatasetCaseModel.dataset_id)
            .where(release_datasets.c.release_id == release_id)
            .distinct()
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_case_tree(self, session: AsyncSession, case_id: UUID) -> DatasetCaseModel | None:
        """
        Load a case with its patients and their specimens eagerly.

        Args:
            session: Async database session
            case_id: Case UUID

        Returns:
            DatasetCaseModel with patients and specimens populated, or None
        """
        stmt = (
            select(DatasetCaseModel)
            .where(DatasetCaseModel.id == case_id)
            .options(selectinload(DatasetCaseModel.patients).selectinload(DatasetPatientModel.specimens))
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_artifacts_for_specimen(
        self,
        session: AsyncSession,
        specimen_id: UUID,
    ) -> Sequence[ArtifactModel]:
        """Return every artifact attached to a specimen."""
        stmt = select(ArtifactModel).where(ArtifactModel.specimen_id == specimen_id)
        result = await session.execute(stmt)
        return result.scalars().all()


dataset_crud = DatasetCRUD()
