"""
Service container.

Lazily builds and caches the engine, services, external clients, handler
registry and worker shared by the worker process and the HTTP surface.

Dependencies: release_jobs.configs, release_jobs.application, release_jobs.boundary
System role: DI container for service wiring
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from release_jobs.application.handlers import (
    ExternalCreateJobHandler,
    ExternalDeleteJobHandler,
    ExternalExecutionJobHandler,
    JobHandlerRegistry,
    SelectionJobHandler,
)
from release_jobs.application.services import AuditEventService, JobLifecycleService
from release_jobs.boundary.aws.capabilities import ExternalCapabilities, probe_capabilities
from release_jobs.boundary.aws.cloudformation_client import CloudFormationStackClient
from release_jobs.boundary.aws.lambda_client import BeaconLambdaClient
from release_jobs.boundary.aws.stepfunctions_client import StepFunctionsExecutionClient
from release_jobs.boundary.db.connection import get_async_engine, get_async_session_factory
from release_jobs.configs import Settings, get_settings
from release_jobs.core.selection_predicate import BeaconSelectionPredicate
from release_jobs.workers.job_worker import JobWorker
from release_jobs.workers.stop_token import StopToken


class ServiceCache:
    """Container for cached service instances."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._capabilities: ExternalCapabilities | None = None
        self._lifecycle: JobLifecycleService | None = None
        self._registry: JobHandlerRegistry | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def engine(self) -> AsyncEngine:
        """Get cached async engine."""
        if self._engine is None:
            self._engine = get_async_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get cached session factory."""
        if self._session_factory is None:
            self._session_factory = get_async_session_factory(self.engine)
        return self._session_factory

    @property
    def capabilities(self) -> ExternalCapabilities:
        """Probe external services once."""
        if self._capabilities is None:
            self._capabilities = probe_capabilities(self.settings.aws)
        return self._capabilities

    @property
    def lifecycle(self) -> JobLifecycleService:
        """Get the lifecycle manager, with every job handler registered."""
        if self._lifecycle is None:
            self._build_job_system()
        return self._lifecycle

    @property
    def handler_registry(self) -> JobHandlerRegistry:
        """Get the job handler registry."""
        if self._registry is None:
            self._build_job_system()
        return self._registry

    def _build_job_system(self) -> None:
        aws = self.settings.aws
        capabilities = self.capabilities
        lifecycle = JobLifecycleService(self.session_factory, AuditEventService())

        genotype_checker = None
        if capabilities.aws_enabled and capabilities.beacon_function_name:
            genotype_checker = BeaconLambdaClient(capabilities.beacon_function_name, region=aws.region)

        stacks = CloudFormationStackClient(
            region=aws.region,
            stack_name_prefix=aws.stack_name_prefix,
            timeout_minutes=aws.stack_timeout_minutes,
        )
        executions = StepFunctionsExecutionClient(region=aws.region)

        handlers = [
            SelectionJobHandler(
                self.session_factory,
                lifecycle,
                predicate=BeaconSelectionPredicate(genotype_checker),
            ),
            ExternalCreateJobHandler(self.session_factory, lifecycle, stacks, capabilities),
            ExternalDeleteJobHandler(self.session_factory, lifecycle, stacks, capabilities),
            ExternalExecutionJobHandler(self.session_factory, lifecycle, executions, capabilities),
        ]

        self._registry = JobHandlerRegistry(lifecycle, handlers)
        self._lifecycle = lifecycle

    def job_worker(self, stop_token: StopToken | None = None) -> JobWorker:
        """Build a worker over the cached lifecycle manager and handlers."""
        return JobWorker(
            self.lifecycle,
            self.handler_registry,
            settings=self.settings.worker,
            stop_token=stop_token,
        )

    async def dispose(self) -> None:
        """Dispose the engine and clear all cached instances."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._capabilities = None
        self._lifecycle = None
        self._registry = None


_service_cache = ServiceCache()


def get_service_cache() -> ServiceCache:
    """Get service cache singleton."""
    return _service_cache
