"""
Pydantic schemas for Rollup.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from raas.core.exceptions import InvalidAddressError
from raas.models.rollup import (
    DeploymentResult,
    NetworkType,
    RollupConfig,
    RollupRecord,
    format_address,
    parse_address,
)


def _check_address(value: str) -> str:
    try:
        return format_address(parse_address(value))
    except InvalidAddressError as e:
        raise ValueError(e.message) from e


class RollupConfigParams(BaseModel):
    """Configuration payload delivered by the requesting collaborator."""
    chain_id: int = Field(..., gt=0)
    initial_chain_owner: str
    validators: List[str] = Field(..., min_length=1)
    batch_poster_address: str
    batch_poster_manager: Optional[str] = None
    is_mainnet: bool = False

    @field_validator("initial_chain_owner", "batch_poster_address", "batch_poster_manager")
    @classmethod
    def validate_address(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return _check_address(value)

    @field_validator("validators")
    @classmethod
    def validate_validators(cls, value: List[str]) -> List[str]:
        return [_check_address(v) for v in value]

    @model_validator(mode="after")
    def default_batch_poster_manager(self) -> "RollupConfigParams":
        if self.batch_poster_manager is None:
            self.batch_poster_manager = self.batch_poster_address
        return self

    def to_config(self) -> RollupConfig:
        """Convert to the immutable domain configuration."""
        return RollupConfig(
            chain_id=self.chain_id,
            initial_chain_owner=self.initial_chain_owner,
            validators=self.validators,
            batch_poster_address=self.batch_poster_address,
            batch_poster_manager=self.batch_poster_manager,
            network=NetworkType.from_mainnet_flag(self.is_mainnet),
        )


class RollupCreate(BaseModel):
    """Schema for creating a rollup."""
    service_id: int = Field(..., ge=0)
    config: RollupConfigParams


class RollupCreateResponse(BaseModel):
    rollup_id: str


class OperationResponse(BaseModel):
    """Boolean result returned by start/stop/delete."""
    rollup_id: str
    success: bool = True


class RollupStatusResponse(BaseModel):
    rollup_id: str
    status: str
    failure_reason: Optional[str] = None


class DeploymentResultResponse(BaseModel):
    rollup_creator_address: str
    rollup_proxy_address: str
    upgrade_executor_address: str
    deployment_block: int
    chain_id: int

    @classmethod
    def from_result(cls, result: DeploymentResult) -> "DeploymentResultResponse":
        return cls(
            rollup_creator_address=result.rollup_creator_address,
            rollup_proxy_address=result.rollup_proxy_address,
            upgrade_executor_address=result.upgrade_executor_address,
            deployment_block=result.deployment_block,
            chain_id=result.chain_id,
        )


class RollupResponse(BaseModel):
    """Schema for Rollup response."""
    rollup_id: str
    service_id: int
    vm_id: str
    chain_id: int
    network: NetworkType
    initial_chain_owner: str
    validators: List[str]
    batch_poster_address: str
    status: str
    failure_reason: Optional[str] = None
    created_at: datetime
    deployment: Optional[DeploymentResultResponse] = None

    @classmethod
    def from_record(cls, record: RollupRecord) -> "RollupResponse":
        """Convert a registry snapshot to response schema."""
        config = record.config
        return cls(
            rollup_id=record.rollup_id,
            service_id=record.service_id,
            vm_id=record.vm_id,
            chain_id=config.chain_id,
            network=config.network,
            initial_chain_owner=format_address(config.initial_chain_owner),
            validators=[format_address(v) for v in config.validators],
            batch_poster_address=format_address(config.batch_poster_address),
            status=record.status_text,
            failure_reason=record.failure_reason,
            created_at=record.created_at,
            deployment=(
                DeploymentResultResponse.from_result(record.deployment)
                if record.deployment else None
            ),
        )


class RollupSummary(BaseModel):
    """Flat listing entry."""
    service_id: int
    rollup_id: str
    vm_id: str
    status: str
    created_at: datetime


class ExecRequest(BaseModel):
    command: List[str] = Field(..., min_length=1)
    service: Optional[str] = None


class ExecResponse(BaseModel):
    rollup_id: str
    service: str
    output: str


class LogsResponse(BaseModel):
    rollup_id: str
    service: str
    logs: str


class NodeStatusResponse(BaseModel):
    rollup_id: str
    service: str
    container_status: str


class HealthResponse(BaseModel):
    status: str
    version: str
    rollups: Dict[str, int] = Field(default_factory=dict)
