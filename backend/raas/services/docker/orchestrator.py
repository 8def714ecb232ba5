"""
Container orchestration for rollup node stacks.

Brings a compose manifest up through the Docker API and tears it down
with an explicit fallback policy: try the API backend, on failure run the
CLI backend against the whole namespace, and surface both errors if the
fallback fails too.
"""
import logging
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Sequence, TypeVar, Union

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import (
    ContainerApiError,
    ContainerCliError,
    ContainerFallbackError,
    DomainException,
)
from raas.services.docker.api_backend import DockerApiBackend
from raas.services.docker.backend_base import ComposeTarget, ContainerBackend
from raas.services.docker.cli_backend import ComposeCliBackend
from raas.services.docker.compose import ComposeManifest

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContainerOrchestrator:
    """
    Owns the service -> container handle mapping for every namespace.

    Responsibilities:
    - up: parse the manifest, create the network, start services
    - down: API teardown with CLI fallback
    - status/exec against tracked handles; logs with CLI fallback
    """

    def __init__(
        self,
        primary: Optional[DockerApiBackend] = None,
        fallback: Optional[ContainerBackend] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.primary = primary or DockerApiBackend(settings=self.settings)
        self.fallback = fallback or ComposeCliBackend(settings=self.settings)
        self._targets: Dict[str, ComposeTarget] = {}

    def _lookup(self, namespace: str, manifest_path: Optional[Path] = None) -> ComposeTarget:
        target = self._targets.get(namespace)
        if target is None:
            return ComposeTarget(namespace=namespace, manifest_path=manifest_path)
        if manifest_path is not None:
            target.manifest_path = manifest_path
        return target

    def tracked_services(self, namespace: str) -> Dict[str, str]:
        """Copy of the service -> container id map for a namespace."""
        target = self._targets.get(namespace)
        return dict(target.handles) if target else {}

    async def up(self, manifest_path: Union[str, Path], namespace: str) -> Dict[str, str]:
        """
        Deploy a compose manifest into an isolated namespace.

        Args:
            manifest_path: Compose file to deploy
            namespace: Project name scoping the network and containers

        Returns:
            Mapping of service name to container id

        Raises:
            ManifestError: If the manifest cannot be parsed
            ContainerApiError: If deployment fails (partial containers are torn down)
        """
        manifest_path = Path(manifest_path)
        manifest = ComposeManifest.load(manifest_path)
        target = self._lookup(namespace, manifest_path)
        self._targets[namespace] = target

        logger.info(f"Starting {len(manifest.services)} services from {manifest_path} as {namespace}")
        try:
            handles = await self.primary.up(target, manifest)
        except ContainerApiError:
            logger.error(f"Deployment of {namespace} failed; cleaning up partial state")
            try:
                await self.down(namespace)
            except DomainException as cleanup_error:
                logger.warning(f"Cleanup after failed start of {namespace} failed: {cleanup_error.message}")
            raise

        logger.info(f"All containers started for {namespace}")
        return handles

    async def down(self, namespace: str, manifest_path: Optional[Union[str, Path]] = None) -> None:
        """
        Tear down every container and the network of a namespace.

        Raises:
            ContainerFallbackError: If both the API and the CLI teardown fail
        """
        target = self._lookup(namespace, Path(manifest_path) if manifest_path else None)
        await self._with_fallback("down", lambda backend: backend.down(target))
        self._targets.pop(namespace, None)
        logger.info(f"All containers stopped for {namespace}")

    async def _with_fallback(self, operation: str, call: Callable[[ContainerBackend], Awaitable[T]]) -> T:
        try:
            return await call(self.primary)
        except ContainerApiError as primary_error:
            logger.warning(
                f"Docker API {operation} failed: {primary_error.message}. "
                f"Falling back to {self.fallback.name}"
            )
            try:
                return await call(self.fallback)
            except ContainerCliError as fallback_error:
                raise ContainerFallbackError(
                    operation, primary_error.message, fallback_error.message
                ) from fallback_error

    async def status(self, namespace: str, service_name: str) -> str:
        """
        Raises:
            ContainerNotFoundError: If no container is tracked for the service
        """
        return await self.primary.status(self._lookup(namespace), service_name)

    async def logs(
        self,
        namespace: str,
        service_name: str,
        tail: int = 100,
        manifest_path: Optional[Union[str, Path]] = None,
    ) -> str:
        """Service logs; uses the CLI when no container handle is tracked."""
        target = self._lookup(namespace, Path(manifest_path) if manifest_path else None)
        if service_name in target.handles:
            return await self.primary.logs(target, service_name, tail)
        logger.info(f"No tracked container for {service_name} in {namespace}; reading logs via CLI")
        return await self.fallback.logs(target, service_name, tail)

    async def exec(self, namespace: str, service_name: str, command: Sequence[str]) -> str:
        """
        Raises:
            ContainerNotFoundError: If no container is tracked for the service
            CommandFailedError: If the command exits non-zero
        """
        return await self.primary.exec(self._lookup(namespace), service_name, command)
