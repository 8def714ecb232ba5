"""
Pytest configuration and fixtures for backend tests.

This file is automatically loaded by pytest before running tests.
It sets up environment variables, isolated settings and fake external tools.
"""
import json
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence
from unittest.mock import MagicMock

import pytest
from docker.errors import NotFound

# Set environment variables BEFORE any raas imports
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RAAS_ROOT_DIR", "/tmp/raas-test")

from raas.core.config import Settings  # noqa: E402
from raas.models.rollup import DeploymentResult, RollupConfig  # noqa: E402
from raas.services.deployment.config_renderer import ConfigRenderer  # noqa: E402
from raas.services.deployment.pipeline import DeploymentPipeline  # noqa: E402
from raas.services.docker.api_backend import DockerApiBackend  # noqa: E402
from raas.services.docker.cli_backend import ComposeCliBackend  # noqa: E402
from raas.services.docker.orchestrator import ContainerOrchestrator  # noqa: E402
from raas.services.process_runner import CommandResult, ProcessRunner  # noqa: E402
from raas.services.rollup_service import RollupService  # noqa: E402

OWNER = bytes([0x11]) * 20
VALIDATOR = bytes([0x22]) * 20
BATCH_POSTER = bytes([0x33]) * 20

CREATOR_ADDRESS = "0x" + "aa" * 20
EXECUTOR_ADDRESS = "0x" + "bb" * 20
PROXY_ADDRESS = "0x" + "cc" * 20
BRIDGE_ADDRESS = "0x" + "dd" * 20

CONFIG_TEMPLATE = """export const config = {
  rollupConfig: {
    chainId: BigInt('YOUR_CHAIN_ID'),
    owner: '0xYOUR_OWNED_ADDRESS',
    chainConfig: '{"chainId":ChainID,"InitialChainOwner":"0xOWNER_ADDRESS"}',
  },
  validators: ['0xAN_OWNED_ADDRESS'],
  batchPosters: ['0xANOTHER_OWNED_ADDRESS'],
}
"""

PROXY_STDOUT = (
    "Creating rollup...\n"
    f"Bridge Contract created at address: {BRIDGE_ADDRESS}\n"
    f"RollupProxy Contract created at address: {PROXY_ADDRESS}\n"
    "All deployed at block number: 123456\n"
)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated to a temporary root with all secrets present."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        RAAS_ROOT_DIR=str(tmp_path / "rollups"),
        DEPLOYER_PRIVATE_KEY="0x" + "01" * 32,
        ARBISCAN_API_KEY="test-arbiscan-key",
        VALIDATOR_PRIVATE_KEY="0x" + "02" * 32,
        BATCH_POSTER_PRIVATE_KEY="0x" + "03" * 32,
        ARBITRUM_RPC_URL="http://localhost:8545",
        PROCESS_RETRY_WAIT=0,
        NETWORK_CREATE_WAIT=0,
    )


@pytest.fixture
def rollup_config() -> RollupConfig:
    return RollupConfig(
        chain_id=42,
        initial_chain_owner=OWNER,
        validators=[VALIDATOR],
        batch_poster_address=BATCH_POSTER,
        batch_poster_manager=BATCH_POSTER,
    )


@pytest.fixture
def deployment_result() -> DeploymentResult:
    return DeploymentResult(
        rollup_creator_address=CREATOR_ADDRESS,
        rollup_proxy_address=PROXY_ADDRESS,
        upgrade_executor_address=EXECUTOR_ADDRESS,
        deployment_block=123456,
        chain_id=42,
        extra_addresses={"BRIDGE_ADDRESS": BRIDGE_ADDRESS},
    )


Handler = Callable[[List[str], Optional[Path]], CommandResult]


class FakeProcessRunner(ProcessRunner):
    """
    Stands in for the external toolchain.

    Default handlers reproduce what git, yarn, forge and hardhat leave on
    disk; tests override individual commands with ``on``.
    """

    def __init__(self):
        super().__init__()
        self.commands: List[List[str]] = []
        self.handlers: Dict[tuple, Handler] = {}

    def on(self, prefix: Sequence[str], handler: Handler) -> None:
        self.handlers[tuple(prefix)] = handler

    def fail(self, prefix: Sequence[str], stderr: str, return_code: int = 1, stdout: str = "") -> None:
        self.on(prefix, lambda cmd, cwd: CommandResult(cmd, return_code, stdout, stderr))

    def ran(self, *prefix: str) -> bool:
        return any(tuple(cmd[: len(prefix)]) == prefix for cmd in self.commands)

    async def run(self, command, cwd=None, timeout=None, env=None) -> CommandResult:
        command = [str(part) for part in command]
        cwd = Path(cwd) if cwd else None
        self.commands.append(command)
        for length in range(len(command), 0, -1):
            handler = self.handlers.get(tuple(command[:length]))
            if handler:
                return handler(command, cwd)
        return self._default(command, cwd)

    def _default(self, command: List[str], cwd: Optional[Path]) -> CommandResult:
        if command[:2] == ["git", "clone"]:
            repo = cwd / command[-1]
            (repo / ".git").mkdir(parents=True, exist_ok=True)
            (repo / "scripts").mkdir(exist_ok=True)
            (repo / "scripts" / "config.template.ts").write_text(CONFIG_TEMPLATE)
        elif command[:3] == ["git", "branch", "--show-current"]:
            return CommandResult(command, 0, "develop\n", "")
        elif command[:4] == ["npx", "hardhat", "run", "scripts/deployment.ts"]:
            network = command[-1]
            out_dir = cwd / "espresso-deployments"
            out_dir.mkdir(exist_ok=True)
            (out_dir / f"{network}.json").write_text(
                json.dumps({"RollupCreator": CREATOR_ADDRESS, "UpgradeExecutor": EXECUTOR_ADDRESS})
            )
        elif command[:4] == ["npx", "hardhat", "run", "scripts/createEthRollup.ts"]:
            return CommandResult(command, 0, PROXY_STDOUT, "")
        return CommandResult(command, 0, "", "")


@pytest.fixture
def fake_runner() -> FakeProcessRunner:
    return FakeProcessRunner()


def make_docker_client() -> MagicMock:
    """Docker client mock that remembers the containers it creates."""
    client = MagicMock()
    created = {}

    def create(**kwargs):
        container = MagicMock(id=f"cid-{kwargs['name']}", status="running", labels=kwargs["labels"])
        container.name = kwargs["name"]
        created[container.id] = container
        created[container.name] = container
        return container

    def get(key):
        if key in created:
            return created[key]
        raise NotFound(f"No such container: {key}")

    client.containers.create.side_effect = create
    client.containers.get.side_effect = get
    client.containers.list.return_value = []
    client.networks.list.return_value = []
    client.created = created
    return client


@pytest.fixture
def docker_client() -> MagicMock:
    return make_docker_client()


def build_rollup_service(settings: Settings, runner: ProcessRunner, client: MagicMock) -> RollupService:
    """RollupService wired to fake tools and a mocked Docker client."""
    return RollupService(
        pipeline=DeploymentPipeline(runner=runner, settings=settings),
        renderer=ConfigRenderer(settings=settings),
        containers=ContainerOrchestrator(
            primary=DockerApiBackend(client=client, settings=settings),
            fallback=ComposeCliBackend(runner=runner, settings=settings),
            settings=settings,
        ),
        settings=settings,
    )


@pytest.fixture
def rollup_service(test_settings, fake_runner, docker_client):
    return build_rollup_service(test_settings, fake_runner, docker_client)
