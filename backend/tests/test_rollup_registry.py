"""
Tests for RollupRegistry.

Tests the in-memory registry: insertion, snapshot isolation, lookups and
status writes.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from raas.core.exceptions import RollupAlreadyExistsError, RollupNotFoundError
from raas.models.rollup import RollupRecord, RollupStatus
from raas.repositories.rollup_registry import RollupRegistry


def make_record(rollup_config, rollup_id="r-1", service_id=7, vm_id=None, **kwargs) -> RollupRecord:
    vm_id = vm_id or f"docker-rollup-{service_id}-{rollup_id}"
    return RollupRecord(
        rollup_id=rollup_id,
        service_id=service_id,
        vm_id=vm_id,
        config=rollup_config,
        workspace_dir=Path("/tmp") / vm_id / "workspace",
        config_dir=Path("/tmp") / vm_id / "config",
        **kwargs,
    )


class TestRollupRegistryInsert:
    """Tests for insert method."""

    @pytest.mark.asyncio
    async def test_insert_starts_in_creating(self, rollup_config):
        """Test a new record is stored as Creating regardless of its input status."""
        registry = RollupRegistry()
        stored = await registry.insert(make_record(rollup_config, status=RollupStatus.RUNNING))

        assert stored.status is RollupStatus.CREATING
        assert (await registry.get("r-1")).status is RollupStatus.CREATING

    @pytest.mark.asyncio
    async def test_insert_duplicate_rollup_id_raises(self, rollup_config):
        """Test inserting an existing rollup_id raises RollupAlreadyExistsError."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))

        with pytest.raises(RollupAlreadyExistsError):
            await registry.insert(make_record(rollup_config, vm_id="other-vm"))

    @pytest.mark.asyncio
    async def test_insert_duplicate_vm_id_raises(self, rollup_config):
        """Test vm_id stays unique across records."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config, vm_id="vm-a"))

        with pytest.raises(ValueError):
            await registry.insert(make_record(rollup_config, rollup_id="r-2", vm_id="vm-a"))

    @pytest.mark.asyncio
    async def test_concurrent_inserts_all_visible(self, rollup_config):
        """Test concurrent inserts of distinct records all land in the registry."""
        registry = RollupRegistry()
        records = [make_record(rollup_config, rollup_id=f"r-{i}") for i in range(20)]

        await asyncio.gather(*(registry.insert(r) for r in records))

        assert len(await registry.list()) == 20


class TestRollupRegistrySnapshots:
    """Tests that callers only ever see copies."""

    @pytest.mark.asyncio
    async def test_mutating_snapshot_does_not_change_registry(self, rollup_config):
        """Test modifying a returned record leaves registry state intact."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))

        snapshot = await registry.get("r-1")
        snapshot.status = RollupStatus.RUNNING
        snapshot.failure_reason = "tampered"

        stored = await registry.get("r-1")
        assert stored.status is RollupStatus.CREATING
        assert stored.failure_reason is None

    @pytest.mark.asyncio
    async def test_mutating_inserted_record_does_not_change_registry(self, rollup_config):
        """Test the registry keeps its own copy of the inserted record."""
        registry = RollupRegistry()
        record = make_record(rollup_config)
        await registry.insert(record)

        record.status = RollupStatus.FAILED

        assert (await registry.get("r-1")).status is RollupStatus.CREATING


class TestRollupRegistryLookups:
    """Tests for get, find_by_service_id and find_by_vm_id."""

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self):
        """Test get returns None for an unknown rollup_id."""
        assert await RollupRegistry().get("missing") is None

    @pytest.mark.asyncio
    async def test_get_or_raise_unknown_raises(self):
        """Test get_or_raise raises RollupNotFoundError."""
        with pytest.raises(RollupNotFoundError):
            await RollupRegistry().get_or_raise("missing")

    @pytest.mark.asyncio
    async def test_find_by_service_id_and_vm_id(self, rollup_config):
        """Test secondary lookups return the matching record."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config, rollup_id="r-1", service_id=1))
        await registry.insert(make_record(rollup_config, rollup_id="r-2", service_id=2))

        assert (await registry.find_by_service_id(2)).rollup_id == "r-2"
        assert (await registry.find_by_vm_id("docker-rollup-1-r-1")).rollup_id == "r-1"
        assert await registry.find_by_service_id(99) is None
        assert await registry.find_by_vm_id("nope") is None

    @pytest.mark.asyncio
    async def test_find_by_service_id_prefers_oldest(self, rollup_config):
        """Test a shared service_id resolves to the earliest created record."""
        registry = RollupRegistry()
        now = datetime.now(timezone.utc)
        await registry.insert(make_record(rollup_config, rollup_id="newer", service_id=5, created_at=now))
        await registry.insert(
            make_record(rollup_config, rollup_id="older", service_id=5, created_at=now - timedelta(hours=1))
        )

        assert (await registry.find_by_service_id(5)).rollup_id == "older"


class TestRollupRegistrySetStatus:
    """Tests for set_status method."""

    @pytest.mark.asyncio
    async def test_set_failed_stores_reason(self, rollup_config):
        """Test Failed carries its reason into status_text."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))

        updated = await registry.set_status("r-1", RollupStatus.FAILED, "boom")

        assert updated.failure_reason == "boom"
        assert updated.status_text == "Failed: boom"

    @pytest.mark.asyncio
    async def test_non_failed_status_clears_reason(self, rollup_config):
        """Test moving out of Failed drops the old reason."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))
        await registry.set_status("r-1", RollupStatus.FAILED, "boom")

        updated = await registry.set_status("r-1", RollupStatus.STOPPED, "ignored")

        assert updated.failure_reason is None
        assert updated.status_text == "Stopped"

    @pytest.mark.asyncio
    async def test_set_status_is_idempotent(self, rollup_config):
        """Test writing the same status twice is allowed."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))

        await registry.set_status("r-1", RollupStatus.CREATED)
        updated = await registry.set_status("r-1", RollupStatus.CREATED)

        assert updated.status is RollupStatus.CREATED

    @pytest.mark.asyncio
    async def test_set_status_unknown_raises(self):
        """Test set_status raises RollupNotFoundError for unknown ids."""
        with pytest.raises(RollupNotFoundError):
            await RollupRegistry().set_status("missing", RollupStatus.RUNNING)


class TestRollupRegistryRemove:
    """Tests for remove, list and count_by_status."""

    @pytest.mark.asyncio
    async def test_remove_deletes_record(self, rollup_config):
        """Test removed records are no longer found."""
        registry = RollupRegistry()
        await registry.insert(make_record(rollup_config))

        removed = await registry.remove("r-1")

        assert removed.rollup_id == "r-1"
        assert await registry.get("r-1") is None
        with pytest.raises(RollupNotFoundError):
            await registry.remove("r-1")

    @pytest.mark.asyncio
    async def test_count_by_status(self, rollup_config):
        """Test counts are grouped by status value."""
        registry = RollupRegistry()
        for i in range(3):
            await registry.insert(make_record(rollup_config, rollup_id=f"r-{i}"))
        await registry.set_status("r-0", RollupStatus.RUNNING)

        assert await registry.count_by_status() == {"creating": 2, "running": 1}
