"""
API endpoints for rollups.

Uses RollupService for lifecycle operations and domain exceptions for error handling.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from raas.api.deps import get_rollup_service
from raas.schemas.rollup import (
    ExecRequest,
    ExecResponse,
    LogsResponse,
    NodeStatusResponse,
    OperationResponse,
    RollupCreate,
    RollupCreateResponse,
    RollupResponse,
    RollupStatusResponse,
    RollupSummary,
)
from raas.services.rollup_service import RollupService

router = APIRouter()


@router.post("", response_model=RollupCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_rollup(
    rollup_data: RollupCreate,
    service: RollupService = Depends(get_rollup_service),
):
    """
    Deploy contracts and generate node configuration for a new rollup.

    Runs the full deployment pipeline before returning.
    """
    rollup_id = await service.create_rollup(rollup_data.service_id, rollup_data.config.to_config())
    return RollupCreateResponse(rollup_id=rollup_id)


@router.get("", response_model=List[RollupSummary])
async def list_rollups(service: RollupService = Depends(get_rollup_service)):
    """List all rollups, oldest first."""
    records = await service.list_rollups()
    return [
        RollupSummary(
            service_id=r.service_id,
            rollup_id=r.rollup_id,
            vm_id=r.vm_id,
            status=r.status_text,
            created_at=r.created_at,
        )
        for r in records
    ]


# By-service and by-vm routes are declared before /{rollup_id} routes


@router.get("/by-service/{service_id}", response_model=RollupResponse)
async def get_rollup_by_service(service_id: int, service: RollupService = Depends(get_rollup_service)):
    return RollupResponse.from_record(await service.get_rollup_by_service(service_id))


@router.post("/by-service/{service_id}/start", response_model=OperationResponse)
async def start_rollup_by_service(service_id: int, service: RollupService = Depends(get_rollup_service)):
    record = await service.get_rollup_by_service(service_id)
    return OperationResponse(rollup_id=record.rollup_id, success=await service.start_rollup(record.rollup_id))


@router.post("/by-service/{service_id}/stop", response_model=OperationResponse)
async def stop_rollup_by_service(service_id: int, service: RollupService = Depends(get_rollup_service)):
    record = await service.get_rollup_by_service(service_id)
    return OperationResponse(rollup_id=record.rollup_id, success=await service.stop_rollup(record.rollup_id))


@router.delete("/by-service/{service_id}", response_model=OperationResponse)
async def delete_rollup_by_service(service_id: int, service: RollupService = Depends(get_rollup_service)):
    record = await service.get_rollup_by_service(service_id)
    return OperationResponse(rollup_id=record.rollup_id, success=await service.delete_rollup(record.rollup_id))


@router.get("/by-vm/{vm_id}/status", response_model=RollupStatusResponse)
async def get_status_by_vm_id(vm_id: str, service: RollupService = Depends(get_rollup_service)):
    record = await service.get_rollup_by_vm_id(vm_id)
    return RollupStatusResponse(
        rollup_id=record.rollup_id,
        status=record.status_text,
        failure_reason=record.failure_reason,
    )


@router.get("/{rollup_id}", response_model=RollupResponse)
async def get_rollup(rollup_id: str, service: RollupService = Depends(get_rollup_service)):
    """Get rollup details, including deployed contract addresses once created."""
    return RollupResponse.from_record(await service.get_rollup(rollup_id))


@router.get("/{rollup_id}/status", response_model=RollupStatusResponse)
async def get_rollup_status(rollup_id: str, service: RollupService = Depends(get_rollup_service)):
    record = await service.get_rollup(rollup_id)
    return RollupStatusResponse(
        rollup_id=record.rollup_id,
        status=record.status_text,
        failure_reason=record.failure_reason,
    )


@router.post("/{rollup_id}/start", response_model=OperationResponse)
async def start_rollup(rollup_id: str, service: RollupService = Depends(get_rollup_service)):
    """Start node containers. Requires status Created or Stopped."""
    return OperationResponse(rollup_id=rollup_id, success=await service.start_rollup(rollup_id))


@router.post("/{rollup_id}/stop", response_model=OperationResponse)
async def stop_rollup(rollup_id: str, service: RollupService = Depends(get_rollup_service)):
    """Stop node containers. Requires status Running."""
    return OperationResponse(rollup_id=rollup_id, success=await service.stop_rollup(rollup_id))


@router.delete("/{rollup_id}", response_model=OperationResponse)
async def delete_rollup(rollup_id: str, service: RollupService = Depends(get_rollup_service)):
    """Delete a rollup, stopping its containers first if it is running."""
    return OperationResponse(rollup_id=rollup_id, success=await service.delete_rollup(rollup_id))


@router.get("/{rollup_id}/node/status", response_model=NodeStatusResponse)
async def get_node_status(
    rollup_id: str,
    node_service: Optional[str] = Query(None, alias="service"),
    service: RollupService = Depends(get_rollup_service),
):
    name = node_service or service.settings.PRIMARY_SERVICE
    container_status = await service.get_node_status(rollup_id, name)
    return NodeStatusResponse(rollup_id=rollup_id, service=name, container_status=container_status)


@router.get("/{rollup_id}/logs", response_model=LogsResponse)
async def get_logs(
    rollup_id: str,
    node_service: Optional[str] = Query(None, alias="service"),
    tail: int = Query(100, ge=1, le=10000),
    service: RollupService = Depends(get_rollup_service),
):
    name = node_service or service.settings.PRIMARY_SERVICE
    logs = await service.get_logs(rollup_id, name, tail=tail)
    return LogsResponse(rollup_id=rollup_id, service=name, logs=logs)


@router.post("/{rollup_id}/exec", response_model=ExecResponse)
async def exec_command(
    rollup_id: str,
    exec_data: ExecRequest,
    service: RollupService = Depends(get_rollup_service),
):
    """Run a command in a node container of a running rollup."""
    name = exec_data.service or service.settings.PRIMARY_SERVICE
    output = await service.exec_command(rollup_id, exec_data.command, name)
    return ExecResponse(rollup_id=rollup_id, service=name, output=output)
