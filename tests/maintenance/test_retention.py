"""Tests for RetentionManager — cleanup of aged detection records."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from radar.maintenance.retention import RetentionManager
from radar.models.base import Base
from radar.models.detection_record import DetectionRecord


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


def _record(record_id, timestamp):
    return DetectionRecord(
        id=record_id,
        timestamp=timestamp,
        container_id="abc123def456",
        volume_id="srv-1",
        types_json="[]",
        payload_json="{}",
    )


class TestRunCleanup:
    @pytest.mark.asyncio
    async def test_deletes_only_aged_records(self, session_factory):
        now = datetime.now(timezone.utc)
        async with session_factory() as session:
            session.add_all([
                _record("old00001", now - timedelta(days=31)),
                _record("new00001", now - timedelta(days=29)),
            ])
            await session.commit()

        config = MagicMock()
        config.retention_days = 30
        summary = await RetentionManager(session_factory, config).run_cleanup(now=now)

        assert summary == {"detections": 1}
        async with session_factory() as session:
            remaining = await session.scalar(select(func.count()).select_from(DetectionRecord))
            kept = await session.get(DetectionRecord, "new00001")
        assert remaining == 1
        assert kept is not None
