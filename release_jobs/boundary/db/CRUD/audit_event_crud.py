"""
Audit event CRUD operations.

Dependencies: sqlalchemy, release_jobs.boundary.db.models
System role: Audit event persistence
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from release_jobs.boundary.db.CRUD.base_crud import BaseCRUD
from release_jobs.boundary.db.models.audit_event_model import AuditEventModel


class AuditEventCRUD(BaseCRUD[AuditEventModel]):
    """CRUD operations for AuditEventModel."""

    def __init__(self) -> None:
        super().__init__(AuditEventModel)

    async def complete(
        self,
        session: AsyncSession,
        id: UUID,
        outcome: int,
        completed_at: datetime,
        details: dict[str, Any],
        duration_seconds: int | None = None,
    ) -> AuditEventModel | None:
        """
        Record the outcome of an audited action.

        Args:
            session: Async database session
            id: Audit event UUID
            outcome: Outcome code
            completed_at: End of the action
            details: Outcome details, replacing the placeholder written at start
            duration_seconds: Recorded duration, if any

        Returns:
            Updated AuditEventModel if found, None otherwise
        """
        event = await self.get_by_id(session, id)
        if event is None:
            return None
        event.outcome = outcome
        event.completed_at = completed_at
        event.details = details
        event.occurred_duration_seconds = duration_seconds
        await session.flush()
        return event


audit_event_crud = AuditEventCRUD()
