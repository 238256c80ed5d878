"""Tests for DetectionEngine — scan flow, cooldown skip, storage and dispatch."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from radar.engine.detection_engine import DetectionEngine
from radar.engine.detection_store import DetectionStore
from radar.errors import MissingVolumeError
from radar.scanner.container_inspector import ContainerContext


def _context():
    return ContainerContext(
        container=MagicMock(),
        container_id="abc123def456",
        volume_path="/volumes/srv-1",
        volume_id="srv-1",
        attrs={},
    )


def _engine(findings=None, flag=None, store=None):
    """Engine wired to mock inspectors.

    ``findings`` is a list of detection types the volume inspector adds.
    """
    containers = MagicMock()
    containers.resolve = AsyncMock(return_value=_context())
    containers.inspect = AsyncMock()
    containers.list_running = AsyncMock(return_value=["abc123def456"])

    async def _volume_inspect(path, detection):
        for detection_type in findings or []:
            detection.add_type(detection_type)

    volumes = MagicMock()
    volumes.directory_size = MagicMock(return_value=2.0)
    volumes.inspect = AsyncMock(side_effect=_volume_inspect)

    hash_store = MagicMock()
    hash_store.is_flagged = AsyncMock(return_value=flag)

    engine = DetectionEngine(
        container_inspector=containers,
        volume_inspector=volumes,
        hash_store=hash_store,
        store=store if store is not None else DetectionStore(),
    )
    return engine, containers, volumes


class TestScanContainer:
    @pytest.mark.asyncio
    async def test_clean_scan_not_stored(self):
        engine, _, _ = _engine()
        handler = AsyncMock()
        engine.set_detection_handler(handler)

        detection = await engine.scan_container("abc123def456")

        assert detection is not None
        assert detection.has_findings() is False
        assert len(engine.store) == 0
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_detection_stored_and_dispatched(self):
        engine, containers, _ = _engine(findings=["Small JAR File"])
        handler = AsyncMock()
        engine.set_detection_handler(handler)

        detection = await engine.scan_container("abc123def456")

        assert detection.types == ["Small JAR File"]
        assert detection.volume_size == 2.0
        assert detection.container_id == "abc123def456"
        assert detection.volume_id == "srv-1"
        assert engine.store.get(detection.id) is detection
        handler.assert_awaited_once_with(detection)
        containers.inspect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_handler_failure_does_not_lose_detection(self):
        engine, _, _ = _engine(findings=["Suspicious File"])
        engine.set_detection_handler(AsyncMock(side_effect=RuntimeError("webhook down")))

        detection = await engine.scan_container("abc123def456")

        assert engine.store.get(detection.id) is detection

    @pytest.mark.asyncio
    async def test_inspection_error_propagates(self):
        engine, containers, _ = _engine()
        containers.resolve = AsyncMock(side_effect=MissingVolumeError("abc123def456"))

        with pytest.raises(MissingVolumeError):
            await engine.scan_container("abc123def456")


class TestFlagCooldown:
    @pytest.mark.asyncio
    async def test_recently_flagged_server_skipped(self):
        flagged_at = datetime.now(timezone.utc) - timedelta(hours=23)
        engine, _, volumes = _engine(
            findings=["Suspicious File"],
            flag={"times_flagged": 1, "last_flagged": flagged_at.isoformat()},
        )

        assert await engine.scan_container("abc123def456") is None
        volumes.inspect.assert_not_called()

    @pytest.mark.asyncio
    async def test_cooldown_boundary(self):
        flagged_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        engine, _, _ = _engine(flag={"times_flagged": 3, "last_flagged": "2026-03-01T12:00:00Z"})

        inside = flagged_at + timedelta(hours=24) - timedelta(seconds=1)
        after = flagged_at + timedelta(hours=24, seconds=1)

        assert await engine.recently_flagged("srv-1", now=inside) is True
        assert await engine.recently_flagged("srv-1", now=after) is False

    @pytest.mark.asyncio
    async def test_never_flagged_or_unknown(self):
        engine, _, _ = _engine(flag={"times_flagged": 0, "last_flagged": None})
        assert await engine.recently_flagged("srv-1") is False

        engine, _, _ = _engine(flag=None)
        assert await engine.recently_flagged("srv-1") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scale", [1, 1000])
    async def test_numeric_epoch_last_flagged(self, scale):
        flagged_at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        epoch = int(flagged_at.timestamp()) * scale
        engine, _, _ = _engine(flag={"times_flagged": 1, "last_flagged": epoch})

        assert await engine.recently_flagged("srv-1", now=flagged_at + timedelta(hours=1)) is True
        assert await engine.recently_flagged("srv-1", now=flagged_at + timedelta(hours=25)) is False
