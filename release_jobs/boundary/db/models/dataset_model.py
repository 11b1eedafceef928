"""
Dataset ORM models.

The case / patient / specimen tree a selection job walks, plus the
artifacts (VCFs and their indexes) attached to each specimen.

Dependencies: sqlalchemy, release_jobs.boundary.db.base
System role: Source material for specimen selection
"""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from release_jobs.boundary.db.base import Base, TimestampMixin, UUIDMixin, enum_values


class ArtifactType(str, enum.Enum):
    """Kinds of file attached to a specimen."""

    VCF = "vcf"
    VCF_INDEX = "vcf_index"
    BAM = "bam"
    BAM_INDEX = "bam_index"


class DatasetModel(Base, UUIDMixin, TimestampMixin):
    """
    A dataset that may be linked into one or more releases.

    Attributes:
        uri: Globally unique dataset URI
        description: Free text description
    """

    __tablename__ = "datasets"

    uri: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(1024), nullable=True)


class DatasetCaseModel(Base, UUIDMixin):
    """A case (family / study unit) within a dataset; the unit a selection job queues."""

    __tablename__ = "dataset_cases"

    dataset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_identifier: Mapped[str] = mapped_column(String(255), nullable=False)

    patients: Mapped[list["DatasetPatientModel"]] = relationship(
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="DatasetPatientModel.external_identifier",
    )


class DatasetPatientModel(Base, UUIDMixin):
    """A patient within a case."""

    __tablename__ = "dataset_patients"

    case_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("dataset_cases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    sex_at_birth: Mapped[str | None] = mapped_column(String(32), nullable=True)

    case: Mapped[DatasetCaseModel] = relationship(back_populates="patients")
    specimens: Mapped[list["DatasetSpecimenModel"]] = relationship(
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="DatasetSpecimenModel.external_identifier",
    )


class DatasetSpecimenModel(Base, UUIDMixin):
    """A specimen taken from a patient; the unit that is selected into a release."""

    __tablename__ = "dataset_specimens"

    patient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("dataset_patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_identifier: Mapped[str] = mapped_column(String(255), nullable=False)

    patient: Mapped[DatasetPatientModel] = relationship(back_populates="specimens")


class ArtifactModel(Base, UUIDMixin):
    """
    A file belonging to a specimen.

    Attributes:
        specimen_id: Owning specimen
        artifact_type: File kind
        url: Object URL, e.g. s3://bucket/key.vcf.gz
    """

    __tablename__ = "artifacts"

    specimen_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("dataset_specimens.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    artifact_type: Mapped[ArtifactType] = mapped_column(
        Enum(ArtifactType, native_enum=False, values_callable=enum_values, length=32),
        nullable=False,
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
