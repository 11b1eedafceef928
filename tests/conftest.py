"""
Shared test fixtures and configuration for entire test suite.

Provides: File-backed SQLite job store, dataset seeding helpers, fake
external services, lifecycle and handler fixtures
Dependencies: pytest, pytest-asyncio, sqlalchemy, aiosqlite
System role: Test infrastructure and fixture management
"""

import uuid
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from release_jobs.application.services.job_lifecycle_service import JobLifecycleService
from release_jobs.boundary.aws.capabilities import ExternalCapabilities
from release_jobs.boundary.db.base import Base
from release_jobs.boundary.db.models import (
    ArtifactModel,
    ArtifactType,
    DatasetCaseModel,
    DatasetModel,
    DatasetPatientModel,
    DatasetSpecimenModel,
    ReleaseModel,
)
from release_jobs.boundary.db.models.release_model import release_datasets


@pytest.fixture
async def db_engine(tmp_path):
    """
    Create a file-backed SQLite database with every table.

    Each transaction starts with BEGIN IMMEDIATE so concurrent transactions
    take the write lock up front and serialise, like row locks on Postgres.

    Yields:
        AsyncEngine: Engine bound to a per-test database file
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory over the test database."""
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def lifecycle(session_factory) -> JobLifecycleService:
    """Lifecycle manager without registered handlers."""
    return JobLifecycleService(session_factory)


@pytest.fixture
def enabled_capabilities() -> ExternalCapabilities:
    return ExternalCapabilities(
        aws_enabled=True,
        region="ap-southeast-2",
        account_id="123456789012",
        execution_state_machine_arn="arn:aws:states:ap-southeast-2:123456789012:stateMachine:release",
    )


@pytest.fixture
def disabled_capabilities() -> ExternalCapabilities:
    return ExternalCapabilities.disabled()


@pytest.fixture
def mock_orchestrator() -> MagicMock:
    """
    Create mock ResourceOrchestrator.

    Returns:
        MagicMock: Name derivation is synchronous, every service call is async
    """
    orchestrator = MagicMock()
    orchestrator.resource_name_for_release = MagicMock(side_effect=lambda key: f"release-access-point-{key}")
    orchestrator.trigger_create = AsyncMock(return_value="arn:aws:cloudformation:stack/release-access-point-R001/1")
    orchestrator.trigger_delete = AsyncMock(return_value=None)
    orchestrator.find_by_name = AsyncMock(return_value="arn:aws:cloudformation:stack/release-access-point-R001/1")
    orchestrator.describe = AsyncMock()
    return orchestrator


@pytest.fixture
def mock_executions() -> MagicMock:
    """Create mock ExecutionService."""
    executions = MagicMock()
    executions.start = AsyncMock(return_value="arn:aws:states:execution:release:1")
    executions.describe = AsyncMock()
    return executions


@dataclass
class SeededRelease:
    """Ids of a seeded release and its dataset tree."""

    release_id: uuid.UUID
    release_key: str
    case_ids: list[uuid.UUID] = field(default_factory=list)
    specimen_ids: list[uuid.UUID] = field(default_factory=list)


async def seed_release(
    session_factory: async_sessionmaker[AsyncSession],
    release_key: str = "R001",
    cases: int = 0,
    specimens_per_case: int = 1,
    sex_at_birth: str | None = "female",
    with_vcf: bool = False,
    is_activated: bool = False,
    application_coded: dict[str, Any] | None = None,
) -> SeededRelease:
    """
    Insert a release linked to one dataset of `cases` cases.

    Every case holds one patient with `specimens_per_case` specimens; with
    `with_vcf` each specimen gets an S3 VCF and VCF index artifact.
    """
    async with session_factory() as session, session.begin():
        release = ReleaseModel(
            release_key=release_key,
            application_coded=application_coded or {},
            is_activated=is_activated,
        )
        dataset = DatasetModel(uri=f"urn:dataset:{release_key}", description="Test dataset")
        session.add_all([release, dataset])
        await session.flush()

        await session.execute(
            release_datasets.insert(),
            [{"release_id": release.id, "dataset_id": dataset.id}],
        )

        seeded = SeededRelease(release_id=release.id, release_key=release_key)
        for case_index in range(cases):
            case = DatasetCaseModel(dataset_id=dataset.id, external_identifier=f"CASE{case_index:03d}")
            session.add(case)
            await session.flush()
            patient = DatasetPatientModel(
                case_id=case.id,
                external_identifier=f"PAT{case_index:03d}",
                sex_at_birth=sex_at_birth,
            )
            session.add(patient)
            await session.flush()
            seeded.case_ids.append(case.id)

            for specimen_index in range(specimens_per_case):
                specimen = DatasetSpecimenModel(
                    patient_id=patient.id,
                    external_identifier=f"SPEC{case_index:03d}-{specimen_index}",
                )
                session.add(specimen)
                await session.flush()
                seeded.specimen_ids.append(specimen.id)

                if with_vcf:
                    base = f"s3://genomes/{release_key}/{specimen.external_identifier}.vcf.gz"
                    session.add_all(
                        [
                            ArtifactModel(specimen_id=specimen.id, artifact_type=ArtifactType.VCF, url=base),
                            ArtifactModel(
                                specimen_id=specimen.id,
                                artifact_type=ArtifactType.VCF_INDEX,
                                url=f"{base}.tbi",
                            ),
                        ]
                    )
        return seeded


class StepClock:
    """Monotonic clock that advances a fixed step on every read."""

    def __init__(self, step: float = 100.0) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def seed(session_factory):
    """
    Seed a release and its dataset tree.

    Returns:
        Callable: async (release_key="R001", **options) -> SeededRelease
    """

    async def _seed(release_key: str = "R001", **options: Any) -> SeededRelease:
        return await seed_release(session_factory, release_key=release_key, **options)

    return _seed


@pytest.fixture
def step_clock() -> StepClock:
    """Clock that exhausts any small time budget after one read."""
    return StepClock()
