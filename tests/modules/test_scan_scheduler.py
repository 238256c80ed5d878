"""Tests for ScanScheduler — batching, failure isolation and lifecycle."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from radar.engine.detection_store import DetectionStore
from radar.modules.scan_scheduler import ScanScheduler


class _FakeEngine:
    """Records batch concurrency and scan order."""

    def __init__(self, container_ids, failing=(), make_detection=None):
        self._container_ids = container_ids
        self._failing = set(failing)
        self._make_detection = make_detection
        self.store = DetectionStore()
        self.in_flight = 0
        self.max_in_flight = 0
        self.scanned = []

    async def list_containers(self):
        return list(self._container_ids)

    async def scan_container(self, container_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            self.scanned.append(container_id)
            if container_id in self._failing:
                raise RuntimeError("runtime API went away")
            if self._make_detection is not None:
                return self._make_detection(container_id=container_id, types=["Suspicious File"])
            return None
        finally:
            self.in_flight -= 1


def _hash_store():
    store = MagicMock()
    store.sync = AsyncMock(return_value=True)
    return store


class TestBatches:
    def test_partitions_in_order(self):
        ids = [f"c{i}" for i in range(12)]
        assert [len(b) for b in ScanScheduler.batches(ids, 5)] == [5, 5, 2]
        assert ScanScheduler.batches([], 5) == []


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_twelve_containers_scanned_five_at_a_time(self):
        engine = _FakeEngine([f"c{i}" for i in range(12)])
        scheduler = ScanScheduler(engine, _hash_store(), config={"batch_size": 5})

        summary = await scheduler.run_cycle()

        assert sorted(engine.scanned) == sorted(f"c{i}" for i in range(12))
        assert engine.max_in_flight == 5
        assert summary["containers"] == 12
        assert summary["skipped"] == 12
        assert scheduler.state == "idle"

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch(self, make_detection):
        engine = _FakeEngine(["a", "b", "c"], failing={"b"}, make_detection=make_detection)
        scheduler = ScanScheduler(engine, _hash_store(), config={"batch_size": 5})

        summary = await scheduler.run_cycle()

        assert sorted(engine.scanned) == ["a", "b", "c"]
        assert summary["failed"] == 1
        assert summary["detected"] == 2

    @pytest.mark.asyncio
    async def test_duplicate_ids_scanned_once(self):
        engine = _FakeEngine(["a", "a", "b"])
        scheduler = ScanScheduler(engine, _hash_store())

        await scheduler.run_cycle()

        assert sorted(engine.scanned) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_empty_cycle(self):
        engine = _FakeEngine([])
        scheduler = ScanScheduler(engine, _hash_store())

        summary = await scheduler.run_cycle()

        assert summary["containers"] == 0
        assert scheduler.get_status()["cycles_completed"] == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_syncs_then_stop_cancels(self):
        engine = _FakeEngine(["a"])
        hash_store = _hash_store()
        scheduler = ScanScheduler(engine, hash_store, config={"scan_interval": 3600})

        await scheduler.start()
        hash_store.sync.assert_awaited_once_with(force=True)
        await asyncio.sleep(0.05)  # first cycle runs immediately

        health = await scheduler.health_check()
        assert health["status"] == "running"
        assert health["details"]["cycles_completed"] == 1
        status = scheduler.get_status()
        assert status["name"] == "scan_scheduler"
        assert status["started_at"] is not None
        assert status["state"] in ("idle", "scanning")

        await scheduler.stop()
        assert scheduler.running is False
        assert scheduler.health_status == "stopped"
