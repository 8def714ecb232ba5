"""
Domain models for rollup records.

RollupRecord instances are owned by RollupRegistry; callers only ever see
copies returned by RollupRecord.snapshot().
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Union

from raas.core.exceptions import InvalidAddressError, InvalidConfigurationError

ADDRESS_LENGTH = 20

AddressLike = Union[str, bytes]


def parse_address(value: AddressLike) -> bytes:
    """
    Parse a 20-byte address from raw bytes or a hex string.

    Hex strings may carry a ``0x`` prefix.

    Raises:
        InvalidAddressError: If the value does not decode to 20 bytes
    """
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = value.strip()
        if text[:2].lower() == "0x":
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise InvalidAddressError(str(value), "Address is not valid hex")
    if len(raw) != ADDRESS_LENGTH:
        raise InvalidAddressError(
            value.hex() if isinstance(value, (bytes, bytearray)) else str(value),
            f"Address must be {ADDRESS_LENGTH} bytes, got {len(raw)}",
        )
    return raw


def format_address(address: bytes) -> str:
    """Render an address as 0x-prefixed lowercase hex."""
    return "0x" + address.hex()


class NetworkType(str, Enum):
    """Parent network the rollup settles to."""
    ARBITRUM_MAINNET = "arbitrum_mainnet"
    ARBITRUM_SEPOLIA = "arbitrum_sepolia"

    @classmethod
    def from_mainnet_flag(cls, is_mainnet: bool) -> "NetworkType":
        return cls.ARBITRUM_MAINNET if is_mainnet else cls.ARBITRUM_SEPOLIA

    @property
    def rpc_url(self) -> str:
        if self is NetworkType.ARBITRUM_MAINNET:
            return "https://arb1.arbitrum.io/rpc"
        return "https://sepolia-rollup.arbitrum.io/rpc"

    @property
    def chain_id(self) -> int:
        return 42161 if self is NetworkType.ARBITRUM_MAINNET else 421614

    @property
    def hardhat_network(self) -> str:
        """Network name passed to ``hardhat run --network``."""
        return "arb1" if self is NetworkType.ARBITRUM_MAINNET else "arbSepolia"


@dataclass(frozen=True)
class RollupConfig:
    """Immutable configuration of one rollup."""

    chain_id: int
    initial_chain_owner: bytes
    validators: Sequence[bytes]
    batch_poster_address: bytes
    batch_poster_manager: bytes
    network: NetworkType = NetworkType.ARBITRUM_SEPOLIA

    def __post_init__(self):
        if self.chain_id <= 0:
            raise InvalidConfigurationError("chain_id", "must be a positive integer")
        if not self.validators:
            raise InvalidConfigurationError("validators", "at least one validator is required")
        # Freeze the validator list so snapshots cannot alias it
        object.__setattr__(self, "validators", tuple(parse_address(v) for v in self.validators))
        object.__setattr__(self, "initial_chain_owner", parse_address(self.initial_chain_owner))
        object.__setattr__(self, "batch_poster_address", parse_address(self.batch_poster_address))
        object.__setattr__(self, "batch_poster_manager", parse_address(self.batch_poster_manager))


class RollupStatus(str, Enum):
    """Lifecycle state of a rollup."""
    CREATING = "creating"
    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    DELETING = "deleting"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class DeploymentResult:
    """Facts recovered from the contract deployment pipeline."""

    rollup_creator_address: str
    rollup_proxy_address: str
    upgrade_executor_address: str
    deployment_block: int
    chain_id: int
    extra_addresses: dict = field(default_factory=dict)  # e.g. bridge, inbox


@dataclass
class RollupRecord:
    """Registry entry for one rollup instance."""

    rollup_id: str
    service_id: int
    vm_id: str
    config: RollupConfig
    workspace_dir: Path
    config_dir: Path
    status: RollupStatus = RollupStatus.CREATING
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    deployment: Optional[DeploymentResult] = None

    @property
    def status_text(self) -> str:
        """Operator-facing status, embedding the failure reason."""
        if self.status is RollupStatus.FAILED:
            return f"Failed: {self.failure_reason or 'unknown error'}"
        return self.status.label

    def snapshot(self) -> "RollupRecord":
        """Return a detached copy safe to hand to callers."""
        return copy.deepcopy(self)
