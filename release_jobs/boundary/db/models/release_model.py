"""
Release ORM model.

A release is a governed data-sharing request. Jobs run on behalf of a
release; the selection job writes the release's durable set of selected
specimens.

Dependencies: sqlalchemy, release_jobs.boundary.db.base
System role: Owner of jobs and of the selected-specimen set
"""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, String, Table
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from release_jobs.boundary.db.base import Base, TimestampMixin, UUIDMixin

release_datasets = Table(
    "release_datasets",
    Base.metadata,
    Column("release_id", UUID(as_uuid=True), ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True),
    Column("dataset_id", UUID(as_uuid=True), ForeignKey("datasets.id", ondelete="CASCADE"), primary_key=True),
)

release_selected_specimens = Table(
    "release_selected_specimens",
    Base.metadata,
    Column("release_id", UUID(as_uuid=True), ForeignKey("releases.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "specimen_id",
        UUID(as_uuid=True),
        ForeignKey("dataset_specimens.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class ReleaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Release ORM model.

    Attributes:
        id: UUID primary key
        release_key: Human-facing unique key (e.g. R001) used by callers
        application_coded: Coded application; its beaconQuery drives selection
        is_activated: Data access has been switched on for the release
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)

    Relationships:
        datasets: via release_datasets
        selected specimens: via release_selected_specimens (replaced wholesale
            when a selection job succeeds)
    """

    __tablename__ = "releases"

    release_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)

    application_coded: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Coded application context passed to the selection predicate",
    )

    is_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
