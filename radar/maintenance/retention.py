"""Data retention manager — automated cleanup of aged detection records."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.detection_record import DetectionRecord
from ..utils.logging import get_logger

logger = get_logger("maintenance.retention")


class RetentionManager:
    """Deletes persisted detections older than the configured threshold.

    Only the database is pruned; the in-memory store is bounded separately.
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        config,
    ):
        self._session_factory = db_session_factory
        self._config = config

    async def run_cleanup(self, now: datetime | None = None) -> dict:
        """Run retention cleanup.

        Returns a summary dict with counts of deleted records per table.
        """
        now = now or datetime.now(timezone.utc)
        retention_days = getattr(self._config, "retention_days", 30)
        cutoff = now - timedelta(days=retention_days)

        async with self._session_factory() as session:
            result = await session.execute(
                delete(DetectionRecord).where(DetectionRecord.timestamp < cutoff)
            )
            await session.commit()

        logger.info(
            "retention_cleanup",
            table="detections",
            deleted=result.rowcount,
            cutoff_days=retention_days,
        )
        return {"detections": result.rowcount}
