"""
In-memory registry of rollup records.

The registry is the only component that mutates a record's status. All
access goes through one asyncio.Lock over the whole map; critical sections
never await, so the lock is never held across an external call. Reads
return snapshots, so callers cannot modify registry state.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional

from raas.core.exceptions import RollupAlreadyExistsError, RollupNotFoundError
from raas.models.rollup import DeploymentResult, RollupRecord, RollupStatus

logger = logging.getLogger(__name__)


class RollupRegistry:
    """
    Concurrent map of rollup_id -> RollupRecord.

    Responsibilities:
    - Insert records in CREATING state
    - Snapshot lookups by rollup_id, service_id and vm_id
    - Status writes (transition legality is enforced by the caller)
    - Removal after teardown
    """

    def __init__(self):
        self._records: Dict[str, RollupRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: RollupRecord) -> RollupRecord:
        """
        Register a new record in CREATING state.

        Args:
            record: Record to store; the registry keeps its own copy

        Returns:
            Snapshot of the stored record

        Raises:
            RollupAlreadyExistsError: If rollup_id is already registered
            ValueError: If vm_id is already used by another record
        """
        async with self._lock:
            if record.rollup_id in self._records:
                raise RollupAlreadyExistsError(record.rollup_id)
            if any(r.vm_id == record.vm_id for r in self._records.values()):
                raise ValueError(f"vm_id already in use: {record.vm_id}")
            stored = record.snapshot()
            stored.status = RollupStatus.CREATING
            stored.failure_reason = None
            self._records[stored.rollup_id] = stored
            logger.debug(f"Registered rollup {stored.rollup_id} (vm_id={stored.vm_id})")
            return stored.snapshot()

    async def get(self, rollup_id: str) -> Optional[RollupRecord]:
        """Get a snapshot by rollup_id, or None."""
        async with self._lock:
            record = self._records.get(rollup_id)
            return record.snapshot() if record else None

    async def get_or_raise(self, rollup_id: str) -> RollupRecord:
        """
        Get a snapshot by rollup_id.

        Raises:
            RollupNotFoundError: If no record exists
        """
        record = await self.get(rollup_id)
        if record is None:
            raise RollupNotFoundError(rollup_id)
        return record

    async def find_by_service_id(self, service_id: int) -> Optional[RollupRecord]:
        """First record created for a service_id, or None."""
        return await self._find(lambda r: r.service_id == service_id)

    async def find_by_vm_id(self, vm_id: str) -> Optional[RollupRecord]:
        """Record owning a vm_id, or None."""
        return await self._find(lambda r: r.vm_id == vm_id)

    async def _find(self, predicate: Callable[[RollupRecord], bool]) -> Optional[RollupRecord]:
        async with self._lock:
            matches = [r for r in self._records.values() if predicate(r)]
            if not matches:
                return None
            # service_id is not unique; prefer the oldest record
            return min(matches, key=lambda r: r.created_at).snapshot()

    async def set_status(
        self,
        rollup_id: str,
        status: RollupStatus,
        reason: Optional[str] = None,
    ) -> RollupRecord:
        """
        Overwrite a record's status.

        Args:
            rollup_id: Record to update
            status: New status
            reason: Failure reason, stored only for FAILED

        Returns:
            Snapshot of the updated record

        Raises:
            RollupNotFoundError: If no record exists
        """
        async with self._lock:
            record = self._records.get(rollup_id)
            if record is None:
                raise RollupNotFoundError(rollup_id)
            previous = record.status
            record.status = status
            record.failure_reason = reason if status is RollupStatus.FAILED else None
            logger.info(f"Rollup {rollup_id}: {previous.label} -> {record.status_text}")
            return record.snapshot()

    async def set_deployment(self, rollup_id: str, deployment: DeploymentResult) -> RollupRecord:
        """Attach the contract deployment result to a record."""
        async with self._lock:
            record = self._records.get(rollup_id)
            if record is None:
                raise RollupNotFoundError(rollup_id)
            record.deployment = deployment
            return record.snapshot()

    async def remove(self, rollup_id: str) -> RollupRecord:
        """
        Delete a record.

        Returns:
            The removed record

        Raises:
            RollupNotFoundError: If no record exists
        """
        async with self._lock:
            record = self._records.pop(rollup_id, None)
            if record is None:
                raise RollupNotFoundError(rollup_id)
            if record.status is RollupStatus.RUNNING:
                logger.warning(f"Removing rollup {rollup_id} while marked running")
            logger.info(f"Removed rollup {rollup_id}")
            return record

    async def list(self) -> List[RollupRecord]:
        """Snapshot of all records, in no particular order."""
        async with self._lock:
            return [r.snapshot() for r in self._records.values()]

    async def count_by_status(self) -> Dict[str, int]:
        """Number of records per status value."""
        async with self._lock:
            counts: Dict[str, int] = {}
            for record in self._records.values():
                counts[record.status.value] = counts.get(record.status.value, 0) + 1
            return counts
