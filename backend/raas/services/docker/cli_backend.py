"""
Container control through the compose command-line tool.

Used as the fallback path: ``down`` against the whole namespace when the
API teardown fails, and ``logs`` when no container handle is tracked.
"""
import logging
import shlex
from typing import List, Optional

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import (
    CommandFailedError,
    ContainerCliError,
    ProcessLaunchError,
    ProcessTimeoutError,
)
from raas.services.docker.backend_base import ComposeTarget, ContainerBackend
from raas.services.process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class ComposeCliBackend(ContainerBackend):
    """Runs `docker compose -f <manifest> -p <namespace> ...`."""

    name = "cli"

    def __init__(self, runner: Optional[ProcessRunner] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.runner = runner or ProcessRunner()

    def base_command(self, target: ComposeTarget) -> List[str]:
        command = shlex.split(self.settings.COMPOSE_COMMAND)
        if target.manifest_path is not None:
            command += ["-f", str(target.manifest_path)]
        return command + ["-p", target.namespace]

    async def _run(self, operation: str, target: ComposeTarget, args: List[str]) -> str:
        command = self.base_command(target) + args
        try:
            result = await self.runner.run_checked(command, timeout=self.settings.COMPOSE_CLI_TIMEOUT)
        except (CommandFailedError, ProcessTimeoutError, ProcessLaunchError) as e:
            logger.error(f"Compose {operation} failed for {target.namespace}: {e.message}")
            raise ContainerCliError(operation, e.message) from e
        return result.stdout

    async def down(self, target: ComposeTarget) -> None:
        await self._run("down", target, ["down", "--remove-orphans"])
        target.handles.clear()
        logger.info(f"Compose down completed for {target.namespace}")

    async def logs(self, target: ComposeTarget, service_name: str, tail: int = 100) -> str:
        return await self._run(f"logs {service_name}", target, ["logs", "--no-color", "--tail", str(tail), service_name])
