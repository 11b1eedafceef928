"""
Audit event service.

Opens and completes audit events for release actions. Both calls run in
the caller's transaction so an event and the job it describes are
written together.

Dependencies: sqlalchemy, release_jobs.boundary.db.CRUD
System role: Audit recorder for job start and completion
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from release_jobs.boundary.db.CRUD.audit_event_crud import audit_event_crud
from release_jobs.boundary.db.models.audit_event_model import AuditAction, AuditOutcome
from release_jobs.core.clock import ensure_utc

logger = logging.getLogger(__name__)

# Shorter actions do not get a duration recorded.
MIN_RECORDED_DURATION_SECONDS = 10

INCOMPLETE_DETAILS = {"errorMessage": "Audit entry not completed"}


class AuditEventService:
    """Audit recorder for release actions."""

    async def start_release_audit_event(
        self,
        session: AsyncSession,
        release_id: UUID,
        action_category: AuditAction,
        action_description: str,
        start: datetime,
    ) -> UUID:
        """
        Open an audit event for an action on a release.

        The event is written as a serious failure until it is completed,
        so an action that never finishes is visible as such.

        Args:
            session: Session of the caller's transaction
            release_id: Release the action is performed on
            action_category: Action category code
            action_description: Short description of the action
            start: Start of the action

        Returns:
            UUID: Audit event id
        """
        event = await audit_event_crud.create(
            session,
            release_id=release_id,
            action_category=action_category.value,
            action_description=action_description,
            occurred_at=start,
            outcome=AuditOutcome.SERIOUS_FAILURE.value,
            details=dict(INCOMPLETE_DETAILS),
        )
        return event.id

    async def complete_release_audit_event(
        self,
        session: AsyncSession,
        audit_event_id: UUID,
        outcome: AuditOutcome,
        start: datetime,
        end: datetime,
        details: dict[str, Any],
    ) -> None:
        """
        Complete an audit event with its outcome.

        Args:
            session: Session of the caller's transaction
            audit_event_id: Event opened by start_release_audit_event
            outcome: Outcome code
            start: Start of the action
            end: End of the action
            details: Outcome details
        """
        duration = (ensure_utc(end) - ensure_utc(start)).total_seconds()
        event = await audit_event_crud.complete(
            session,
            audit_event_id,
            outcome=outcome.value,
            completed_at=end,
            details=details,
            duration_seconds=int(duration) if duration > MIN_RECORDED_DURATION_SECONDS else None,
        )
        if event is None:
            logger.warning(
                f"{__name__}:complete_release_audit_event - Audit event {audit_event_id} not found",
                extra={"audit_event_id": str(audit_event_id)},
            )
