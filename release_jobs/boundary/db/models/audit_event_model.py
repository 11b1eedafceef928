"""
Audit event ORM model.

One row per audited action on a release. Jobs open an event when they
start and complete it when they reach a terminal state.

Dependencies: sqlalchemy, release_jobs.boundary.db.base
System role: Audit trail for release job actions
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from release_jobs.boundary.db.base import Base, UUIDMixin
from release_jobs.core.clock import utc_now


class AuditAction(str, enum.Enum):
    """Action category codes (create, read, update, delete, execute)."""

    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"
    EXECUTE = "E"


class AuditOutcome(int, enum.Enum):
    """
    Outcome codes of an audited action.

    SUCCESS: Action completed
    MINOR_FAILURE: Action ended early without harm (used for cancellation)
    SERIOUS_FAILURE: Action failed (also the value of a never-completed event)
    MAJOR_FAILURE: Fatal failure
    """

    SUCCESS = 0
    MINOR_FAILURE = 4
    SERIOUS_FAILURE = 8
    MAJOR_FAILURE = 12


class AuditEventModel(Base, UUIDMixin):
    """
    Audit event ORM model.

    Attributes:
        release_id: Release the action was performed on
        action_category: AuditAction code
        action_description: Short description, e.g. "Ran specimen selection"
        occurred_at: Start of the action (UTC)
        completed_at: End of the action, null while in progress
        occurred_duration_seconds: Whole seconds, recorded only for long actions
        outcome: AuditOutcome code
        details: Outcome details (job id, handles, failure reason)
    """

    __tablename__ = "audit_events"

    release_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("releases.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action_category: Mapped[str] = mapped_column(String(1), nullable=False)
    action_description: Mapped[str] = mapped_column(String(255), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    occurred_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    outcome: Mapped[int] = mapped_column(Integer, nullable=False, default=AuditOutcome.SERIOUS_FAILURE.value)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
