"""
Contract deployment pipeline.

Runs the ordered, fail-fast sequence that stands up a rollup's contracts
inside its workspace directory:

    1. prepare workspace      5. render deployment config script
    2. checkout source        6. deploy RollupCreator
    3. install and build      7. record creator in .env
    4. write .env             8. create rollup proxy

Any failure aborts the run with a DeploymentStepError naming the step.
The pipeline never retries a whole step; per-command retry comes from
the configured RetryPolicy.
"""
import logging
import os
import re
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import CommandFailedError, DeploymentStepError, DomainException
from raas.core.retry import RetryPolicy
from raas.models.rollup import DeploymentResult, RollupConfig
from raas.services.deployment import output_parser
from raas.services.process_runner import ProcessRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_TEMPLATE = Path("scripts") / "config.template.ts"
CONFIG_SCRIPT = Path("scripts") / "config.ts"
DEPLOY_SCRIPT = "scripts/deployment.ts"
CREATE_ROLLUP_SCRIPT = "scripts/createEthRollup.ts"


class DeploymentStep(IntEnum):
    PREPARE_WORKSPACE = 1
    CHECKOUT_SOURCE = 2
    BUILD_CONTRACTS = 3
    WRITE_ENV = 4
    RENDER_CONFIG_SCRIPT = 5
    DEPLOY_CREATOR = 6
    RECORD_CREATOR = 7
    CREATE_PROXY = 8

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", " ")


@dataclass(frozen=True)
class DeploymentCredentials:
    """Secrets written to the contracts workspace .env."""
    deployer_private_key: str
    arbiscan_api_key: str

    def __repr__(self) -> str:
        return "DeploymentCredentials(<redacted>)"

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeploymentCredentials":
        """
        Raises:
            MissingConfigurationError: If either secret is unset
        """
        return cls(
            deployer_private_key=settings.require("DEPLOYER_PRIVATE_KEY"),
            arbiscan_api_key=settings.require("ARBISCAN_API_KEY"),
        )


def render_config_script(template: str, config: RollupConfig) -> str:
    """
    Substitute rollup parameters into scripts/config.template.ts.

    Addresses are written as bare hex. Placeholders are matched longest
    first in a single pass, so no substituted value is rewritten.
    """
    owner = config.initial_chain_owner.hex()
    replacements = {
        "OWNER_ADDRESS": owner,
        "YOUR_OWNED_ADDRESS": owner,
        "YOUR_CHAIN_ID": str(config.chain_id),
        "ChainID": str(config.chain_id),
        "AN_OWNED_ADDRESS": config.validators[0].hex(),
        "ANOTHER_OWNED_ADDRESS": config.batch_poster_address.hex(),
    }
    pattern = re.compile(
        "|".join(re.escape(key) for key in sorted(replacements, key=len, reverse=True))
    )
    return pattern.sub(lambda match: replacements[match.group(0)], template)


class DeploymentPipeline:
    """
    Deploys rollup contracts with the nitro-contracts toolchain.

    Responsibilities:
    - Check out and build the contracts repository
    - Write the workspace .env and config.ts
    - Run the deployment scripts and parse their output
    """

    def __init__(self, runner: Optional[ProcessRunner] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.runner = runner or ProcessRunner()

    def contracts_dir(self, workspace_dir: Path) -> Path:
        return Path(workspace_dir) / self.settings.CONTRACTS_DIR_NAME

    def manifest_path(self, workspace_dir: Path, config: RollupConfig) -> Path:
        """Location of the JSON manifest written by scripts/deployment.ts."""
        return (
            self.contracts_dir(workspace_dir)
            / self.settings.DEPLOYMENTS_DIR_NAME
            / f"{config.network.hardhat_network}.json"
        )

    def _retry(self, attempts: Optional[int] = None) -> RetryPolicy:
        return RetryPolicy(
            attempts=attempts or self.settings.PROCESS_RETRY_ATTEMPTS,
            wait_seconds=self.settings.PROCESS_RETRY_WAIT,
        )

    async def deploy(
        self,
        config: RollupConfig,
        workspace_dir: Path,
        credentials: DeploymentCredentials,
    ) -> DeploymentResult:
        """
        Run all eight steps.

        Args:
            config: Rollup configuration
            workspace_dir: Directory owned by this rollup
            credentials: Deployer key and explorer API key

        Returns:
            DeploymentResult with creator, proxy and upgrade-executor
            addresses and the deployment block

        Raises:
            DeploymentStepError: On the first failing step
        """
        workspace_dir = Path(workspace_dir)
        repo_dir = self.contracts_dir(workspace_dir)
        logger.info(f"Starting contract deployment for chain {config.chain_id} in {workspace_dir}")

        await self._step(DeploymentStep.PREPARE_WORKSPACE, self._prepare_workspace, workspace_dir)
        await self._step(DeploymentStep.CHECKOUT_SOURCE, self._checkout_source, workspace_dir, repo_dir)
        await self._step(DeploymentStep.BUILD_CONTRACTS, self._build_contracts, repo_dir)
        await self._step(DeploymentStep.WRITE_ENV, self._write_env, repo_dir, credentials)
        await self._step(DeploymentStep.RENDER_CONFIG_SCRIPT, self._render_config_script, repo_dir, config)
        manifest = await self._step(DeploymentStep.DEPLOY_CREATOR, self._deploy_creator, workspace_dir, config)
        await self._step(
            DeploymentStep.RECORD_CREATOR, self._record_creator, repo_dir, manifest.rollup_creator_address
        )
        result = await self._step(
            DeploymentStep.CREATE_PROXY, self._create_proxy, workspace_dir, config, manifest
        )

        logger.info(
            f"Contracts deployed for chain {config.chain_id}: proxy {result.rollup_proxy_address} "
            f"at block {result.deployment_block}"
        )
        return result

    async def _step(self, step: DeploymentStep, func: Callable[..., Awaitable[T]], *args) -> T:
        logger.info(f"Deployment step {step.value}/{len(DeploymentStep)}: {step.label}")
        try:
            return await func(*args)
        except DomainException as e:
            logger.error(f"Deployment step {step.value} ({step.label}) failed: {e.message}")
            raise DeploymentStepError(step.value, step.label, e.message) from e
        except OSError as e:
            logger.error(f"Deployment step {step.value} ({step.label}) failed: {e}")
            raise DeploymentStepError(step.value, step.label, str(e)) from e

    async def _prepare_workspace(self, workspace_dir: Path) -> None:
        workspace_dir.mkdir(parents=True, exist_ok=True)

    async def _checkout_source(self, workspace_dir: Path, repo_dir: Path) -> None:
        timeout = self.settings.GIT_TIMEOUT
        branch = self.settings.CONTRACTS_BRANCH

        if (repo_dir / ".git").is_dir():
            logger.info(f"Reusing existing checkout at {repo_dir}")
        else:
            await self.runner.run_checked(
                ["git", "clone", self.settings.CONTRACTS_REPO_URL, repo_dir.name],
                cwd=workspace_dir,
                timeout=timeout,
                retry=self._retry(self.settings.CHECKOUT_RETRY_ATTEMPTS),
            )

        await self.runner.run_checked(["git", "checkout", branch], cwd=repo_dir, timeout=timeout)

        result = await self.runner.run_checked(
            ["git", "branch", "--show-current"], cwd=repo_dir, timeout=timeout
        )
        current = result.stdout.strip()
        if current != branch:
            raise CommandFailedError(
                result.command, result.return_code, f"Not on {branch} branch, currently on {current or 'detached HEAD'}"
            )

    async def _build_contracts(self, repo_dir: Path) -> None:
        timeout = self.settings.BUILD_TIMEOUT
        await self.runner.run_checked(["yarn", "install"], cwd=repo_dir, timeout=timeout, retry=self._retry())
        await self.runner.run_checked(["forge", "install"], cwd=repo_dir, timeout=timeout, retry=self._retry())

        result = await self.runner.run(["yarn", "build:all"], cwd=repo_dir, timeout=timeout)
        if result.success:
            return
        if output_parser.is_warning_only(result.stderr):
            logger.warning(f"Contract build exited {result.return_code} with warnings only; continuing")
            return
        raise CommandFailedError(result.command, result.return_code, result.stderr)

    async def _write_env(self, repo_dir: Path, credentials: DeploymentCredentials) -> None:
        env_path = repo_dir / ".env"
        env_path.write_text(
            f'ARBISCAN_API_KEY="{credentials.arbiscan_api_key}"\n'
            f'DEVNET_PRIVKEY="{credentials.deployer_private_key}"\n'
            "IGNORE_MAX_DATA_SIZE_WARNING=true\n"
            f'ESPRESSO_TEE_VERIFIER_ADDRESS="{self.settings.TEE_VERIFIER_ADDRESS}"\n'
        )
        os.chmod(env_path, 0o600)
        logger.debug(f"Wrote {env_path}")

    async def _render_config_script(self, repo_dir: Path, config: RollupConfig) -> None:
        template = (repo_dir / CONFIG_TEMPLATE).read_text()
        target = repo_dir / CONFIG_SCRIPT
        target.write_text(render_config_script(template, config))
        logger.debug(f"Rendered {target}")

    async def _run_hardhat(self, repo_dir: Path, script: str, config: RollupConfig):
        return await self.runner.run_checked(
            ["npx", "hardhat", "run", script, "--network", config.network.hardhat_network],
            cwd=repo_dir,
            timeout=self.settings.DEPLOY_SCRIPT_TIMEOUT,
        )

    async def _deploy_creator(self, workspace_dir: Path, config: RollupConfig) -> output_parser.DeploymentManifest:
        await self._run_hardhat(self.contracts_dir(workspace_dir), DEPLOY_SCRIPT, config)
        manifest = output_parser.parse_deployment_manifest(self.manifest_path(workspace_dir, config))
        logger.info(f"RollupCreator deployed at {manifest.rollup_creator_address}")
        return manifest

    async def _record_creator(self, repo_dir: Path, creator_address: str) -> None:
        with open(repo_dir / ".env", "a") as f:
            f.write(f'ROLLUP_CREATOR_ADDRESS="{creator_address}"\n')

    async def _create_proxy(
        self,
        workspace_dir: Path,
        config: RollupConfig,
        manifest: output_parser.DeploymentManifest,
    ) -> DeploymentResult:
        manifest_source = str(self.manifest_path(workspace_dir, config))
        upgrade_executor = output_parser.require_upgrade_executor(manifest, manifest_source)

        result = await self._run_hardhat(self.contracts_dir(workspace_dir), CREATE_ROLLUP_SCRIPT, config)
        proxy = output_parser.parse_proxy_output(result.stdout)

        return DeploymentResult(
            rollup_creator_address=manifest.rollup_creator_address,
            rollup_proxy_address=proxy.rollup_proxy_address,
            upgrade_executor_address=upgrade_executor,
            deployment_block=proxy.deployment_block,
            chain_id=config.chain_id,
            extra_addresses=proxy.extra_addresses,
        )
