"""Scan Scheduler — drives the continuous scan cycle over all running containers.

Each cycle lists running containers, splits them into fixed-size batches and
scans every member of a batch concurrently, waiting for the whole batch before
starting the next. A fixed sleep follows every cycle however long it took.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from ..engine.detection_engine import DetectionEngine
from ..intel.hash_store import HashIntelligenceStore
from .base_module import BaseModule

STATE_IDLE = "idle"
STATE_SCANNING = "scanning"


class ScanScheduler(BaseModule):
    """Two-state (idle/scanning) time-driven scan loop."""

    def __init__(
        self,
        engine: DetectionEngine,
        hash_store: HashIntelligenceStore,
        config: dict | None = None,
    ):
        super().__init__(name="scan_scheduler", config=config)

        cfg = config or {}
        self._scan_interval: float = cfg.get("scan_interval", 180)
        self._batch_size: int = cfg.get("batch_size", 5)

        self._engine = engine
        self._hash_store = hash_store
        self._state: str = STATE_IDLE
        self._cycles_completed: int = 0
        self._last_cycle: Optional[dict] = None
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        return self._state

    async def start(self) -> None:
        self.logger.info("scan_scheduler_starting", batch_size=self._batch_size)

        await self._hash_store.sync(force=True)

        self.mark_running()
        self._loop_task = asyncio.create_task(self._scan_loop())
        self.logger.info("scan_scheduler_started")

    async def stop(self) -> None:
        self.mark_stopped()
        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._state = STATE_IDLE
        self.logger.info("scan_scheduler_stopped")

    def health_details(self) -> dict:
        return {
            "state": self._state,
            "cycles_completed": self._cycles_completed,
            "last_cycle": self._last_cycle,
        }

    async def _scan_loop(self) -> None:
        while self.running:
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._state = STATE_IDLE
                self.logger.error("scan_cycle_error", error=str(e))
            try:
                await asyncio.sleep(self._scan_interval)
            except asyncio.CancelledError:
                break

    async def run_cycle(self) -> dict:
        """Scan every running container once, batch by batch."""
        self._state = STATE_SCANNING
        started = datetime.now(timezone.utc)

        # Deduplicate so a container is scanned at most once per cycle
        container_ids = list(dict.fromkeys(await self._engine.list_containers()))
        self.logger.info("scan_cycle_started", containers=len(container_ids))

        outcomes = {"detected": 0, "clean": 0, "skipped": 0, "failed": 0}
        for batch in self.batches(container_ids, self._batch_size):
            results = await asyncio.gather(*(self._scan_one(cid) for cid in batch))
            for outcome in results:
                outcomes[outcome] += 1

        self._cycles_completed += 1
        self._last_cycle = {
            "started_at": started.isoformat(),
            "finished_at": datetime.now(timezone.utc).isoformat(),
            "containers": len(container_ids),
            **outcomes,
        }
        self._state = STATE_IDLE
        self.heartbeat()
        self.logger.info(
            "scan_cycle_completed",
            total_detections=len(self._engine.store),
            **outcomes,
        )
        return self._last_cycle

    async def _scan_one(self, container_id: str) -> str:
        try:
            detection = await self._engine.scan_container(container_id)
        except Exception as e:
            self.logger.error("container_scan_failed", container_id=container_id, error=str(e))
            return "failed"
        if detection is None:
            return "skipped"
        return "detected" if detection.has_findings() else "clean"

    @staticmethod
    def batches(items: list, size: int) -> list[list]:
        return [items[i:i + size] for i in range(0, len(items), size)]
