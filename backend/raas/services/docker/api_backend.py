"""
Container control through the Docker Engine API (docker-py).

docker-py is synchronous; every call runs in a worker thread under a
RetryPolicy so the event loop never blocks and each call is bounded.
"""
import asyncio
import logging
from typing import Callable, Dict, Optional, Sequence, TypeVar

import docker
from docker.errors import DockerException, ImageNotFound, NotFound
from requests.exceptions import RequestException

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import (
    CommandFailedError,
    ContainerApiError,
    ContainerNotFoundError,
    ProcessTimeoutError,
)
from raas.core.retry import RetryPolicy, run_with_retry
from raas.services.docker.backend_base import ComposeTarget, ContainerBackend
from raas.services.docker.compose import ComposeManifest, ComposeService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# docker-py lets transport errors from requests through unwrapped
API_ERRORS = (DockerException, RequestException)

PROJECT_LABEL = "project"
SERVICE_LABEL = "service"
# Lets `docker compose -p <namespace> down` find API-created resources
COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"


def container_name(namespace: str, service_name: str) -> str:
    return f"{namespace}-{service_name}"


class DockerApiBackend(ContainerBackend):
    """
    Primary control path.

    Responsibilities:
    - Create the namespace network with bounded retry
    - Create and start containers in dependency order
    - Stop/remove containers and the network
    - Status, logs and exec against tracked containers
    """

    name = "api"

    def __init__(self, client: Optional[docker.DockerClient] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env(timeout=self.settings.DOCKER_API_TIMEOUT)
        return self._client

    def _default_policy(self) -> RetryPolicy:
        return RetryPolicy(attempts=1, timeout=self.settings.DOCKER_API_TIMEOUT)

    async def _call(self, operation: str, func: Callable[[], T], policy: Optional[RetryPolicy] = None) -> T:
        """Run a blocking docker-py call in a thread, mapping failures to ContainerApiError."""
        try:
            return await run_with_retry(
                policy or self._default_policy(),
                lambda: asyncio.to_thread(func),
                f"docker {operation}",
                retry_on=API_ERRORS,
            )
        except API_ERRORS as e:
            raise ContainerApiError(operation, str(e)) from e
        except ProcessTimeoutError as e:
            raise ContainerApiError(operation, e.message) from e

    def _labels(self, namespace: str, service_name: Optional[str] = None) -> Dict[str, str]:
        labels = {PROJECT_LABEL: namespace, COMPOSE_PROJECT_LABEL: namespace}
        if service_name:
            labels[SERVICE_LABEL] = service_name
            labels[COMPOSE_SERVICE_LABEL] = service_name
        return labels

    async def up(self, target: ComposeTarget, manifest: ComposeManifest) -> Dict[str, str]:
        """
        Deploy every service of a manifest into the target namespace.

        Handles are recorded on ``target`` as each container starts, so a
        partial deployment can still be torn down.

        Returns:
            Mapping of service name to container id

        Raises:
            ContainerApiError: If any Docker call fails
        """
        await self._ensure_network(target)
        for service_name in manifest.start_order():
            service = manifest.services[service_name]
            target.handles[service_name] = await self._call(
                f"create {service_name}",
                lambda: self._deploy_service(target, manifest, service),
            )
            logger.info(f"Started {service_name} in {target.namespace}")
        return dict(target.handles)

    async def _ensure_network(self, target: ComposeTarget):
        name = target.network_name
        labels = self._labels(target.namespace)

        def create():
            existing = [n for n in self.client.networks.list(names=[name]) if n.name == name]
            if existing:
                logger.info(f"Network already exists: {name}")
                return existing[0]
            network = self.client.networks.create(name, driver="bridge", labels=labels)
            logger.info(f"Created network: {name}")
            return network

        policy = RetryPolicy(
            attempts=self.settings.NETWORK_CREATE_ATTEMPTS,
            wait_seconds=self.settings.NETWORK_CREATE_WAIT,
            timeout=self.settings.DOCKER_API_TIMEOUT,
        )
        return await self._call(f"create network {name}", create, policy)

    def _deploy_service(self, target: ComposeTarget, manifest: ComposeManifest, service: ComposeService) -> str:
        name = container_name(target.namespace, service.name)

        try:
            self.client.containers.get(name).remove(force=True)
            logger.info(f"Removed stale container {name}")
        except NotFound:
            pass

        try:
            self.client.images.get(service.image)
        except ImageNotFound:
            logger.info(f"Pulling image: {service.image}")
            self.client.images.pull(service.image)

        kwargs = service.create_kwargs(
            name, manifest.base_dir, target.namespace, self._labels(target.namespace, service.name)
        )
        # Namespace network only; the service name is the hostname peers use
        kwargs["network"] = target.network_name
        kwargs["networking_config"] = {
            target.network_name: self.client.api.create_endpoint_config(aliases=[service.name]),
        }
        container = self.client.containers.create(**kwargs)
        container.start()
        return container.id

    def _discover(self, namespace: str) -> Dict[str, str]:
        containers = self.client.containers.list(all=True, filters={"label": f"{PROJECT_LABEL}={namespace}"})
        return {c.labels.get(SERVICE_LABEL, c.name): c.id for c in containers}

    async def down(self, target: ComposeTarget) -> None:
        """
        Stop then remove each container, then remove the network.

        The first failing call aborts the whole teardown.

        Raises:
            ContainerApiError: On the first failing Docker call
        """
        handles = dict(await self._call(f"list {target.namespace}", lambda: self._discover(target.namespace)))
        handles.update(target.handles)

        stop_timeout = self.settings.CONTAINER_STOP_TIMEOUT
        for service_name, container_id in handles.items():
            def stop_and_remove(container_id=container_id, service_name=service_name):
                try:
                    container = self.client.containers.get(container_id)
                except NotFound:
                    logger.debug(f"Container for {service_name} already removed")
                    return
                container.stop(timeout=stop_timeout)
                container.remove()

            await self._call(f"stop {service_name}", stop_and_remove)
            target.handles.pop(service_name, None)
            logger.info(f"Stopped and removed container for service: {service_name}")

        def remove_network():
            try:
                self.client.networks.get(target.network_name).remove()
            except NotFound:
                logger.debug(f"Network {target.network_name} already removed")

        await self._call(f"remove network {target.network_name}", remove_network)

    def _handle(self, target: ComposeTarget, service_name: str) -> str:
        handle = target.handles.get(service_name)
        if handle is None:
            raise ContainerNotFoundError(target.namespace, service_name)
        return handle

    async def status(self, target: ComposeTarget, service_name: str) -> str:
        """
        Container state ("running", "exited", ...).

        Raises:
            ContainerNotFoundError: If no handle is tracked for the service
        """
        handle = self._handle(target, service_name)
        return await self._call(f"inspect {service_name}", lambda: self.client.containers.get(handle).status)

    async def logs(self, target: ComposeTarget, service_name: str, tail: int = 100) -> str:
        handle = self._handle(target, service_name)
        raw = await self._call(
            f"logs {service_name}", lambda: self.client.containers.get(handle).logs(tail=tail)
        )
        return raw.decode("utf-8", errors="replace")

    async def exec(self, target: ComposeTarget, service_name: str, command: Sequence[str]) -> str:
        """
        Run a command inside a service container.

        Raises:
            ContainerNotFoundError: If no handle is tracked for the service
            CommandFailedError: If the command exits non-zero
        """
        handle = self._handle(target, service_name)
        argv = list(command)
        exit_code, output = await self._call(
            f"exec {service_name}", lambda: self.client.containers.get(handle).exec_run(argv)
        )
        text = output.decode("utf-8", errors="replace") if isinstance(output, bytes) else str(output)
        if exit_code not in (0, None):
            raise CommandFailedError(argv, exit_code, text)
        return text
