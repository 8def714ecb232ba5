"""
Parsers for contract deployment tool output.

All knowledge of the deployment scripts' output format lives here. The
pipeline only calls these functions, so a script that emits structured
output can replace the marker scraping without touching pipeline flow.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from raas.core.exceptions import OutputParseError

logger = logging.getLogger(__name__)

ROLLUP_CREATOR_KEY = "RollupCreator"
UPGRADE_EXECUTOR_KEY = "UpgradeExecutor"

PROXY_ADDRESS_MARKER = "RollupProxy Contract created at address:"
DEPLOYMENT_BLOCK_MARKER = "All deployed at block number:"

# Markers for addresses the proxy script prints when it creates them.
# Keys match the placeholders in l2_chain_info.json.
OPTIONAL_ADDRESS_MARKERS: Dict[str, str] = {
    "BRIDGE_ADDRESS": "Bridge Contract created at address:",
    "INBOX_ADDRESS": "Inbox Contract created at address:",
    "SEQUENCER_INBOX_ADDRESS": "SequencerInbox Contract created at address:",
    "VALIDATOR_UTILS_ADDRESS": "ValidatorUtils Contract created at address:",
    "VALIDATOR_WALLET_CREATOR_ADDRESS": "ValidatorWalletCreator Contract created at address:",
}

_WARNING_LINE = re.compile(r"\bwarn(ing)?\b", re.IGNORECASE)
_ERROR_LINE = re.compile(r"\berror\b", re.IGNORECASE)


@dataclass
class DeploymentManifest:
    """Addresses read from espresso-deployments/<network>.json."""
    rollup_creator_address: str
    upgrade_executor_address: Optional[str]
    raw: dict = field(default_factory=dict)


@dataclass
class ProxyDeploymentOutput:
    """Facts scraped from the proxy-creation script's stdout."""
    rollup_proxy_address: str
    deployment_block: int
    extra_addresses: Dict[str, str] = field(default_factory=dict)


def parse_deployment_manifest(manifest_path: Path) -> DeploymentManifest:
    """
    Read the JSON manifest written by the primary deployment script.

    Raises:
        OutputParseError: If the file is missing, not JSON, or lacks RollupCreator
    """
    source = str(manifest_path)
    if not manifest_path.exists():
        raise OutputParseError(ROLLUP_CREATOR_KEY, source, "deployment manifest not found")
    try:
        content = json.loads(manifest_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise OutputParseError(ROLLUP_CREATOR_KEY, source, f"unreadable manifest: {e}") from e
    if not isinstance(content, dict):
        raise OutputParseError(ROLLUP_CREATOR_KEY, source, "manifest is not a JSON object")

    creator = content.get(ROLLUP_CREATOR_KEY)
    if not isinstance(creator, str) or not creator:
        raise OutputParseError(
            ROLLUP_CREATOR_KEY, source, f"keys present: {', '.join(sorted(content)) or 'none'}"
        )
    executor = content.get(UPGRADE_EXECUTOR_KEY)
    return DeploymentManifest(
        rollup_creator_address=creator,
        upgrade_executor_address=executor if isinstance(executor, str) and executor else None,
        raw=content,
    )


def require_upgrade_executor(manifest: DeploymentManifest, source: str) -> str:
    """
    Return the UpgradeExecutor address from a parsed manifest.

    Raises:
        OutputParseError: If the manifest has no UpgradeExecutor entry
    """
    if not manifest.upgrade_executor_address:
        raise OutputParseError(UPGRADE_EXECUTOR_KEY, source, "missing from deployment manifest")
    return manifest.upgrade_executor_address


def _value_after_marker(output: str, marker: str) -> Optional[str]:
    # "Inbox ..." must not match inside "SequencerInbox ..."
    pattern = re.compile(r"(?<!\w)" + re.escape(marker) + r"\s*(\S+)")
    for line in output.splitlines():
        match = pattern.search(line)
        if match:
            return match.group(1)
    return None


def parse_proxy_output(stdout: str) -> ProxyDeploymentOutput:
    """
    Scrape the proxy-creation script's stdout.

    The deployment block defaults to 0 when its marker is absent; the
    proxy address is mandatory.

    Raises:
        OutputParseError: If the proxy address marker is missing, or the
            block marker is followed by a non-integer
    """
    proxy = _value_after_marker(stdout, PROXY_ADDRESS_MARKER)
    if proxy is None:
        raise OutputParseError(
            "rollup proxy address", "createEthRollup output", f"marker '{PROXY_ADDRESS_MARKER}' not found"
        )

    block_text = _value_after_marker(stdout, DEPLOYMENT_BLOCK_MARKER)
    if block_text is None:
        logger.warning("Deployment block marker not found in proxy output, using block 0")
        block = 0
    else:
        try:
            block = int(block_text)
        except ValueError as e:
            raise OutputParseError("deployment block", "createEthRollup output", block_text) from e

    extra = {}
    for key, marker in OPTIONAL_ADDRESS_MARKERS.items():
        value = _value_after_marker(stdout, marker)
        if value:
            extra[key] = value

    return ProxyDeploymentOutput(rollup_proxy_address=proxy, deployment_block=block, extra_addresses=extra)


def is_warning_only(stderr: str) -> bool:
    """
    True if a failed build printed warnings but no errors.

    Compilers exit non-zero on warnings in some configurations; that
    outcome is tolerated.
    """
    lines = [line for line in stderr.splitlines() if line.strip()]
    if not lines:
        return False
    if any(_ERROR_LINE.search(line) for line in lines):
        return False
    return any(_WARNING_LINE.search(line) for line in lines)
