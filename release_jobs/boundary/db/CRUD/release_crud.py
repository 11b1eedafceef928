"""
Release CRUD operations.

Lookup by release key and maintenance of the release's durable set of
selected specimens.

Dependencies: sqlalchemy, release_jobs.boundary.db.models
System role: Release persistence operations
"""

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from release_jobs.boundary.db.CRUD.base_crud import BaseCRUD
from release_jobs.boundary.db.models.release_model import (
    ReleaseModel,
    release_datasets,
    release_selected_specimens,
)


class ReleaseCRUD(BaseCRUD[ReleaseModel]):
    """CRUD operations for ReleaseModel."""

    def __init__(self) -> None:
        super().__init__(ReleaseModel)

    async def get_by_release_key(
        self,
        session: AsyncSession,
        release_key: str,
        for_update: bool = False,
    ) -> ReleaseModel | None:
        """
        Retrieve a release by its key.

        Locking the release row serialises concurrent job starts for the
        same release on databases with row locks.

        Args:
            session: Async database session
            release_key: Release key
            for_update: Lock the row for the rest of the transaction

        Returns:
            ReleaseModel if found, None otherwise
        """
        stmt = select(ReleaseModel).where(ReleaseModel.release_key == release_key)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def add_datasets(
        self,
        session: AsyncSession,
        release_id: UUID,
        dataset_ids: Iterable[UUID],
    ) -> None:
        """Link datasets into a release."""
        rows = [{"release_id": release_id, "dataset_id": dataset_id} for dataset_id in dataset_ids]
        if rows:
            await session.execute(insert(release_datasets), rows)

    async def get_selected_specimen_ids(
        self,
        session: AsyncSession,
        release_id: UUID,
    ) -> Sequence[UUID]:
        """Return the release's selected specimen ids."""
        stmt = select(release_selected_specimens.c.specimen_id).where(
            release_selected_specimens.c.release_id == release_id
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_selected_specimens(self, session: AsyncSession, release_id: UUID) -> int:
        """Count the release's selected specimens."""
        stmt = select(func.count()).select_from(release_selected_specimens).where(
            release_selected_specimens.c.release_id == release_id
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def replace_selected_specimens(
        self,
        session: AsyncSession,
        release_id: UUID,
        specimen_ids: Iterable[UUID],
    ) -> int:
        """
        Replace the release's selected specimens with the given set.

        Args:
            session: Async database session
            release_id: Release UUID
            specimen_ids: New selection

        Returns:
            int: Number of specimens now selected
        """
        await session.execute(
            delete(release_selected_specimens).where(release_selected_specimens.c.release_id == release_id)
        )
        rows = [{"release_id": release_id, "specimen_id": specimen_id} for specimen_id in set(specimen_ids)]
        if rows:
            await session.execute(insert(release_selected_specimens), rows)
        return len(rows)


release_crud = ReleaseCRUD()
