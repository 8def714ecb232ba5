"""
Rollup lifecycle service.

Composes the registry, the contract deployment pipeline, the config
renderer and the container orchestrator behind create/start/stop/delete
and status queries.

Only one lifecycle operation runs per rollup at a time; a second one is
rejected with RollupBusyError. Every failure, cancellation included, is
recorded on the rollup as Failed(reason) before the error reaches the caller.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Sequence
from uuid import uuid4

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import (
    DomainException,
    RollupBusyError,
    RollupNotFoundError,
    RollupOperationError,
    RollupStateError,
)
from raas.models.rollup import RollupConfig, RollupRecord, RollupStatus
from raas.repositories.rollup_registry import RollupRegistry
from raas.services.deployment.config_renderer import COMPOSE_FILE, ConfigRenderer, NodeCredentials
from raas.services.deployment.pipeline import DeploymentCredentials, DeploymentPipeline
from raas.services.docker.orchestrator import ContainerOrchestrator

logger = logging.getLogger(__name__)

STARTABLE = (RollupStatus.CREATED, RollupStatus.STOPPED)
TRANSITIONAL = (
    RollupStatus.CREATING,
    RollupStatus.STARTING,
    RollupStatus.STOPPING,
    RollupStatus.DELETING,
)


class RollupService:
    """
    Lifecycle orchestrator for rollups.

    Responsibilities:
    - Create: deploy contracts, render node config (Creating -> Created)
    - Start/stop node containers (Starting -> Running, Stopping -> Stopped)
    - Delete: stop if running, then remove the record
    - Lookups by rollup_id, service_id and vm_id
    - Node inspection (status, logs, exec)
    """

    def __init__(
        self,
        registry: Optional[RollupRegistry] = None,
        pipeline: Optional[DeploymentPipeline] = None,
        renderer: Optional[ConfigRenderer] = None,
        containers: Optional[ContainerOrchestrator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.registry = registry or RollupRegistry()
        self.pipeline = pipeline or DeploymentPipeline(settings=self.settings)
        self.renderer = renderer or ConfigRenderer(settings=self.settings)
        self.containers = containers or ContainerOrchestrator(settings=self.settings)
        self._locks: Dict[str, asyncio.Lock] = {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def namespace(self, record: RollupRecord) -> str:
        """Compose project / network scope for a rollup's containers."""
        return f"{self.settings.PROJECT_PREFIX}-{record.vm_id}"

    def manifest_path(self, record: RollupRecord) -> Path:
        return record.config_dir / COMPOSE_FILE

    @asynccontextmanager
    async def _exclusive(self, rollup_id: str, operation: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(rollup_id, asyncio.Lock())
        if lock.locked():
            logger.warning(f"Rejected {operation} for rollup {rollup_id}: another operation is in progress")
            raise RollupBusyError(rollup_id, operation)
        async with lock:
            try:
                yield
            except RollupNotFoundError:
                # Removed by a delete that finished first
                if self._locks.get(rollup_id) is lock:
                    del self._locks[rollup_id]
                raise

    @asynccontextmanager
    async def _recording_failure(self, rollup_id: str, operation: str, prefix: str = "") -> AsyncIterator[None]:
        """
        Record Failed(reason) for any error raised inside the block.

        Domain errors keep their message; anything else is wrapped in
        RollupOperationError. Cancellation is recorded and re-raised as is.
        """
        try:
            yield
        except DomainException as e:
            await self._fail(rollup_id, operation, f"{prefix}{e.message}", e)
        except asyncio.CancelledError:
            logger.error(f"Rollup {rollup_id} {operation} was cancelled")
            await self.registry.set_status(rollup_id, RollupStatus.FAILED, f"{prefix}{operation} cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error during {operation} of rollup {rollup_id}")
            await self._fail(rollup_id, operation, f"{prefix}{e.__class__.__name__}: {e}", e)

    async def _fail(self, rollup_id: str, operation: str, reason: str, cause: Exception) -> None:
        """Record Failed(reason) and raise RollupOperationError."""
        logger.error(f"Rollup {rollup_id} {operation} failed: {reason}")
        await self.registry.set_status(rollup_id, RollupStatus.FAILED, reason)
        raise RollupOperationError(rollup_id, operation, reason) from cause

    async def _by_service_id(self, service_id: int) -> RollupRecord:
        record = await self.registry.find_by_service_id(service_id)
        if record is None:
            raise RollupNotFoundError(str(service_id), key="service_id")
        return record

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_rollup(self, service_id: int, config: RollupConfig) -> str:
        """
        Deploy contracts and render node configuration for a new rollup.

        Args:
            service_id: Identifier assigned by the requesting service
            config: Rollup configuration

        Returns:
            The new rollup_id

        Raises:
            RollupOperationError: If configuration, deployment or rendering fails;
                the rollup stays registered as Failed
        """
        rollup_id = str(uuid4())
        vm_id = f"docker-rollup-{service_id}-{rollup_id}"
        root = Path(self.settings.RAAS_ROOT_DIR) / vm_id
        record = RollupRecord(
            rollup_id=rollup_id,
            service_id=service_id,
            vm_id=vm_id,
            config=config,
            workspace_dir=root / "workspace",
            config_dir=root / "config",
        )

        async with self._exclusive(rollup_id, "create"):
            await self.registry.insert(record)
            logger.info(f"Creating rollup {rollup_id} for service {service_id} (chain {config.chain_id})")

            async with self._recording_failure(rollup_id, "create", "Workspace setup failed: "):
                record.workspace_dir.mkdir(parents=True, exist_ok=True)
                record.config_dir.mkdir(parents=True, exist_ok=True)

            async with self._recording_failure(rollup_id, "create", "Configuration error: "):
                deploy_credentials = DeploymentCredentials.from_settings(self.settings)
                node_credentials = NodeCredentials.from_settings(self.settings)

            async with self._recording_failure(rollup_id, "create", "Contract deployment failed: "):
                deployment = await self.pipeline.deploy(config, record.workspace_dir, deploy_credentials)
            await self.registry.set_deployment(rollup_id, deployment)

            async with self._recording_failure(rollup_id, "create", "Config generation failed: "):
                self.renderer.render(config, deployment, node_credentials, record.config_dir, record.workspace_dir)

            await self.registry.set_status(rollup_id, RollupStatus.CREATED)

        logger.info(f"Rollup {rollup_id} created successfully")
        return rollup_id

    async def start_rollup(self, rollup_id: str) -> bool:
        """
        Start the node containers of a Created or Stopped rollup.

        Raises:
            RollupNotFoundError: If the rollup does not exist
            RollupBusyError: If another operation is in progress
            RollupStateError: If the rollup is not Created or Stopped
            RollupOperationError: If the containers fail to start
        """
        await self.registry.get_or_raise(rollup_id)
        async with self._exclusive(rollup_id, "start"):
            record = await self.registry.get_or_raise(rollup_id)
            if record.status not in STARTABLE:
                raise RollupStateError(rollup_id, "start", record.status_text)

            await self.registry.set_status(rollup_id, RollupStatus.STARTING)
            async with self._recording_failure(rollup_id, "start"):
                await self.containers.up(self.manifest_path(record), self.namespace(record))
            await self.registry.set_status(rollup_id, RollupStatus.RUNNING)
        return True

    async def stop_rollup(self, rollup_id: str) -> bool:
        """
        Stop the node containers of a Running rollup.

        Raises:
            RollupNotFoundError: If the rollup does not exist
            RollupBusyError: If another operation is in progress
            RollupStateError: If the rollup is not Running
            RollupOperationError: If teardown fails through both API and CLI
        """
        await self.registry.get_or_raise(rollup_id)
        async with self._exclusive(rollup_id, "stop"):
            record = await self.registry.get_or_raise(rollup_id)
            if record.status is not RollupStatus.RUNNING:
                raise RollupStateError(rollup_id, "stop", record.status_text)
            await self._stop(record, "stop")
        return True

    async def _stop(self, record: RollupRecord, operation: str) -> None:
        await self.registry.set_status(record.rollup_id, RollupStatus.STOPPING)
        async with self._recording_failure(record.rollup_id, operation):
            await self.containers.down(self.namespace(record), self.manifest_path(record))
        await self.registry.set_status(record.rollup_id, RollupStatus.STOPPED)

    async def delete_rollup(self, rollup_id: str) -> bool:
        """
        Remove a rollup, stopping it first if it is running.

        Raises:
            RollupNotFoundError: If the rollup does not exist
            RollupBusyError: If another operation is in progress
            RollupStateError: If the rollup is mid-transition
            RollupOperationError: If the containers cannot be torn down;
                the rollup stays registered as Failed
        """
        await self.registry.get_or_raise(rollup_id)
        async with self._exclusive(rollup_id, "delete"):
            record = await self.registry.get_or_raise(rollup_id)
            if record.status in TRANSITIONAL:
                raise RollupStateError(rollup_id, "delete", record.status_text)

            if record.status is RollupStatus.RUNNING:
                await self.registry.set_status(rollup_id, RollupStatus.DELETING)
                await self._stop(record, "delete")
            elif self.containers.tracked_services(self.namespace(record)):
                # e.g. a Failed rollup whose containers are still tracked
                async with self._recording_failure(rollup_id, "delete"):
                    await self.containers.down(self.namespace(record), self.manifest_path(record))

            await self.registry.remove(rollup_id)
        self._locks.pop(rollup_id, None)
        logger.info(f"Rollup {rollup_id} deleted")
        return True

    # =========================================================================
    # By-service variants
    # =========================================================================

    async def start_rollup_by_service(self, service_id: int) -> bool:
        record = await self._by_service_id(service_id)
        return await self.start_rollup(record.rollup_id)

    async def stop_rollup_by_service(self, service_id: int) -> bool:
        record = await self._by_service_id(service_id)
        return await self.stop_rollup(record.rollup_id)

    async def delete_rollup_by_service(self, service_id: int) -> bool:
        record = await self._by_service_id(service_id)
        return await self.delete_rollup(record.rollup_id)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_rollup(self, rollup_id: str) -> RollupRecord:
        """Snapshot of a rollup; raises RollupNotFoundError."""
        return await self.registry.get_or_raise(rollup_id)

    async def get_status(self, rollup_id: str) -> str:
        """Status text, e.g. "Running" or "Failed: <reason>"."""
        record = await self.registry.get_or_raise(rollup_id)
        return record.status_text

    async def get_rollup_by_service(self, service_id: int) -> RollupRecord:
        return await self._by_service_id(service_id)

    async def get_rollup_by_vm_id(self, vm_id: str) -> RollupRecord:
        record = await self.registry.find_by_vm_id(vm_id)
        if record is None:
            raise RollupNotFoundError(vm_id, key="vm_id")
        return record

    async def get_status_by_vm_id(self, vm_id: str) -> str:
        record = await self.get_rollup_by_vm_id(vm_id)
        return record.status_text

    async def list_rollups(self) -> List[RollupRecord]:
        """All rollups, oldest first."""
        return sorted(await self.registry.list(), key=lambda r: r.created_at)

    async def count_by_status(self) -> Dict[str, int]:
        return await self.registry.count_by_status()

    # =========================================================================
    # Node inspection
    # =========================================================================

    async def get_node_status(self, rollup_id: str, service: Optional[str] = None) -> str:
        """
        Container state of a node service, or "not running" when the
        service has no tracked container.
        """
        record = await self.registry.get_or_raise(rollup_id)
        service = service or self.settings.PRIMARY_SERVICE
        namespace = self.namespace(record)
        if service not in self.containers.tracked_services(namespace):
            return "not running"
        return await self.containers.status(namespace, service)

    async def get_logs(self, rollup_id: str, service: Optional[str] = None, tail: int = 100) -> str:
        record = await self.registry.get_or_raise(rollup_id)
        return await self.containers.logs(
            self.namespace(record),
            service or self.settings.PRIMARY_SERVICE,
            tail=tail,
            manifest_path=self.manifest_path(record),
        )

    async def exec_command(self, rollup_id: str, command: Sequence[str], service: Optional[str] = None) -> str:
        """
        Run a command in a node container of a running rollup.

        Raises:
            RollupStateError: If the rollup is not Running
            ContainerNotFoundError: If the service has no tracked container
        """
        record = await self.registry.get_or_raise(rollup_id)
        if record.status is not RollupStatus.RUNNING:
            raise RollupStateError(rollup_id, "exec in", record.status_text)
        return await self.containers.exec(
            self.namespace(record), service or self.settings.PRIMARY_SERVICE, command
        )
