"""Detection Store — bounded in-memory Detection set with optional persistence.

The memory ring is the only read path for the Control API. When a session
factory is attached, stored Detections are also written to the ``detections``
table so a restart can rehydrate the ring.
"""

import json
from collections import Counter, OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select

from ..models.detection import Detection
from ..models.detection_record import DetectionRecord
from ..utils.logging import get_logger

logger = get_logger("engine.detection_store")


class DetectionStore:
    """Keeps the most recent ``max_entries`` Detections, oldest evicted first."""

    def __init__(self, max_entries: int = 10_000, session_factory=None):
        self._max_entries = max_entries
        self._session_factory = session_factory
        self._detections: OrderedDict[str, Detection] = OrderedDict()

    def set_session_factory(self, factory) -> None:
        """Attach a DB session factory for write-through persistence."""
        self._session_factory = factory
        logger.info("detection_store_persistence_attached")

    def add(self, detection: Detection) -> None:
        self._detections[detection.id] = detection
        while len(self._detections) > self._max_entries:
            evicted_id, _ = self._detections.popitem(last=False)
            logger.debug("detection_evicted", detection_id=evicted_id)

    def get(self, detection_id: str) -> Optional[Detection]:
        return self._detections.get(detection_id)

    def all(self) -> list[Detection]:
        """All stored Detections in insertion order."""
        return list(self._detections.values())

    def history(self, identifier: str) -> list[Detection]:
        """Detections for a volume/server identifier (or container id), newest first."""
        matches = [
            d for d in self._detections.values()
            if d.volume_id == identifier or d.container_id == identifier
        ]
        return sorted(matches, key=lambda d: d.timestamp, reverse=True)

    def stats(self, now: Optional[datetime] = None) -> dict:
        """Aggregate counts. Repeated types inside one Detection each count."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=24)
        detections = self.all()

        type_counts: Counter = Counter()
        node_counts: Counter = Counter()
        for d in detections:
            type_counts.update(d.types)
            if d.node:
                node_counts[d.node] += 1

        return {
            "total_detections": len(detections),
            "recent_detections": sum(1 for d in detections if d.timestamp > cutoff),
            "detection_types": dict(type_counts),
            "by_node": dict(node_counts),
        }

    def __len__(self) -> int:
        return len(self._detections)

    # --- Persistence ---

    async def persist(self, detection: Detection) -> None:
        """Write a Detection to the database. Failures are logged, not raised."""
        if not self._session_factory:
            return
        try:
            async with self._session_factory() as session:
                await session.merge(DetectionRecord(
                    id=detection.id,
                    timestamp=detection.timestamp,
                    container_id=detection.container_id,
                    volume_id=detection.volume_id,
                    types_json=json.dumps(detection.types),
                    payload_json=detection.model_dump_json(),
                ))
                await session.commit()
        except Exception as e:
            logger.error("detection_persist_failed", detection_id=detection.id, error=str(e))

    async def load_recent(self) -> int:
        """Rehydrate the ring from the most recent persisted Detections."""
        if not self._session_factory:
            return 0
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(DetectionRecord)
                    .order_by(DetectionRecord.timestamp.desc())
                    .limit(self._max_entries)
                )
                rows = result.scalars().all()
        except Exception as e:
            logger.error("detection_load_failed", error=str(e))
            return 0

        loaded = 0
        for row in reversed(rows):
            try:
                self.add(Detection.model_validate_json(row.payload_json))
                loaded += 1
            except ValueError as e:
                logger.warning("detection_record_invalid", detection_id=row.id, error=str(e))
        logger.info("detections_loaded", count=loaded)
        return loaded
