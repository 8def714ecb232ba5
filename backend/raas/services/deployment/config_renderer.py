"""
Service for node configuration generation.

Handles:
- Template variable substitution into the packaged templates
- Per-rollup JWT secret for the node and validation server
- Writing the compose manifest consumed by ContainerOrchestrator
"""
import json
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

from raas.core.config import Settings, settings as default_settings
from raas.core.exceptions import ConfigRenderError, TemplateNotFoundError
from raas.models.rollup import DeploymentResult, RollupConfig, format_address

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

L2_CHAIN_INFO = "l2_chain_info.json"
FULL_NODE = "full_node.json"
VALIDATION_NODE = "validation_node_config.json"
JWT_FILE = "val_jwt.hex"
COMPOSE_FILE = "docker-compose.yml"

# Placeholders filled from DeploymentResult.extra_addresses, else Settings
OPTIONAL_ADDRESS_KEYS = (
    "BRIDGE_ADDRESS",
    "INBOX_ADDRESS",
    "SEQUENCER_INBOX_ADDRESS",
    "VALIDATOR_UTILS_ADDRESS",
    "VALIDATOR_WALLET_CREATOR_ADDRESS",
)


@dataclass(frozen=True)
class NodeCredentials:
    """Key material embedded in the node configuration."""
    validator_private_key: str
    batch_poster_private_key: str
    parent_chain_rpc_url: str

    def __repr__(self) -> str:
        return f"NodeCredentials(parent_chain_rpc_url={self.parent_chain_rpc_url!r}, keys=<redacted>)"

    @classmethod
    def from_settings(cls, settings: Settings) -> "NodeCredentials":
        """
        Raises:
            MissingConfigurationError: If any value is unset
        """
        return cls(
            validator_private_key=settings.require("VALIDATOR_PRIVATE_KEY"),
            batch_poster_private_key=settings.require("BATCH_POSTER_PRIVATE_KEY"),
            parent_chain_rpc_url=settings.require("ARBITRUM_RPC_URL"),
        )


def render_template(template_name: str, variables: Dict[str, object], templates_dir: Path = TEMPLATES_DIR) -> str:
    """
    Render a packaged template with {{KEY}} substitution.

    Raises:
        TemplateNotFoundError: If the template does not exist
    """
    template_path = templates_dir / template_name
    if not template_path.exists():
        raise TemplateNotFoundError(str(template_path))

    content = template_path.read_text()
    json_target = template_name.endswith(".json")
    for key, value in variables.items():
        text = str(value)
        if json_target:
            # Values land inside JSON string literals
            text = json.dumps(text)[1:-1]
        content = content.replace("{{" + key + "}}", text)
    return content


class ConfigRenderer:
    """
    Renders node configuration for one rollup.

    Writes into config_dir:
    - l2_chain_info.json, full_node.json, validation_node_config.json
    - val_jwt.hex
    - docker-compose.yml
    """

    def __init__(self, settings: Optional[Settings] = None, templates_dir: Optional[Path] = None):
        self.settings = settings or default_settings
        self.templates_dir = Path(templates_dir) if templates_dir else TEMPLATES_DIR

    def build_variables(
        self,
        config: RollupConfig,
        deployment: DeploymentResult,
        credentials: NodeCredentials,
        config_dir: Path,
        workspace_dir: Path,
    ) -> Dict[str, object]:
        variables: Dict[str, object] = {
            "CHAIN_ID": config.chain_id,
            "PARENT_CHAIN_ID": config.network.chain_id,
            "INITIAL_CHAIN_OWNER": format_address(config.initial_chain_owner),
            "ROLLUP_ADDRESS": deployment.rollup_proxy_address,
            "UPGRADE_EXECUTOR_ADDRESS": deployment.upgrade_executor_address,
            "DEPLOYMENT_BLOCK": deployment.deployment_block,
            "PARENT_CHAIN_RPC_URL": credentials.parent_chain_rpc_url,
            "VALIDATOR_PRIVATE_KEY": credentials.validator_private_key,
            "BATCH_POSTER_PRIVATE_KEY": credentials.batch_poster_private_key,
            "NITRO_IMAGE": self.settings.NITRO_IMAGE,
            "HTTP_PORT": self.settings.NITRO_HTTP_PORT,
            "CONFIG_DIR": Path(config_dir).resolve(),
            "DATA_DIR": (Path(workspace_dir) / "data").resolve(),
        }
        for key in OPTIONAL_ADDRESS_KEYS:
            variables[key] = deployment.extra_addresses.get(key) or getattr(self.settings, key, "")
        return variables

    def render(
        self,
        config: RollupConfig,
        deployment: DeploymentResult,
        credentials: NodeCredentials,
        config_dir: Path,
        workspace_dir: Path,
    ) -> Path:
        """
        Render every configuration file for a rollup.

        Args:
            config: Rollup configuration
            deployment: Addresses and block from the deployment pipeline
            credentials: Validator and batch-poster keys, parent RPC URL
            config_dir: Target directory for node configuration
            workspace_dir: Rollup workspace (node data lives under it)

        Returns:
            Path to the rendered compose manifest

        Raises:
            ConfigRenderError: If a file cannot be rendered or written
            TemplateNotFoundError: If a packaged template is missing
        """
        config_dir = Path(config_dir)
        workspace_dir = Path(workspace_dir)
        variables = self.build_variables(config, deployment, credentials, config_dir, workspace_dir)

        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            (workspace_dir / "data" / "nitro").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigRenderError(str(config_dir), str(e)) from e

        for name in (L2_CHAIN_INFO, FULL_NODE, VALIDATION_NODE):
            content = render_template(name, variables, self.templates_dir)
            try:
                json.loads(content)
            except json.JSONDecodeError as e:
                raise ConfigRenderError(name, f"rendered file is not valid JSON: {e}") from e
            self._write(config_dir / name, content, private=name == FULL_NODE)

        self._write(config_dir / JWT_FILE, "0x" + secrets.token_hex(32), private=True)

        manifest = render_template(COMPOSE_FILE, variables, self.templates_dir)
        try:
            yaml.safe_load(manifest)
        except yaml.YAMLError as e:
            raise ConfigRenderError(COMPOSE_FILE, f"rendered manifest is not valid YAML: {e}") from e
        manifest_path = config_dir / COMPOSE_FILE
        self._write(manifest_path, manifest)

        logger.info(f"Configuration files generated in {config_dir}")
        return manifest_path

    def _write(self, path: Path, content: str, private: bool = False) -> None:
        try:
            path.write_text(content)
            if private:
                os.chmod(path, 0o600)
        except OSError as e:
            raise ConfigRenderError(str(path), str(e)) from e
        logger.debug(f"Generated {path.name} at {path}")
