"""Control API tests — routes exercised in-process through ASGITransport."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from radar.config import RadarConfig
from radar.dependencies import (
    get_app_config,
    get_detection_engine,
    get_detection_store,
    get_hash_store,
    get_scan_scheduler,
)
from radar.engine.detection_store import DetectionStore
from radar.errors import MissingVolumeError
from radar.intel.hash_store import HashIntelligenceStore
from radar.main import app


@pytest.fixture
def store(make_detection):
    now = datetime.now(timezone.utc)
    store = DetectionStore()
    store.add(make_detection(
        volume_id="srv-1", types=["Small JAR File"], node="node-a",
        timestamp=now - timedelta(hours=30),
    ))
    store.add(make_detection(volume_id="srv-1", types=["Suspicious File"], timestamp=now))
    store.add(make_detection(volume_id="srv-2", types=["WhatsApp Bot"], timestamp=now))
    return store


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.scan_container = AsyncMock(return_value=None)
    return engine


@pytest.fixture
def scheduler():
    scheduler = MagicMock()
    scheduler.health_check = AsyncMock(return_value={"status": "running", "details": {"state": "idle"}})
    return scheduler


@pytest.fixture
def config():
    return RadarConfig(_env_file=None, api_token=None)


@pytest_asyncio.fixture
async def client(store, engine, scheduler, config):
    app.dependency_overrides[get_detection_store] = lambda: store
    app.dependency_overrides[get_detection_engine] = lambda: engine
    app.dependency_overrides[get_scan_scheduler] = lambda: scheduler
    app.dependency_overrides[get_hash_store] = lambda: HashIntelligenceStore()
    app.dependency_overrides[get_app_config] = lambda: config
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestDetections:
    @pytest.mark.asyncio
    async def test_list(self, client, store):
        resp = await client.get("/api/detections")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert [d["id"] for d in data["detections"]] == [d.id for d in store.all()]

    @pytest.mark.asyncio
    async def test_get_by_id(self, client, store):
        detection = store.all()[0]
        resp = await client.get(f"/api/detections/{detection.id}")
        assert resp.status_code == 200
        assert resp.json()["types"] == ["Small JAR File"]

    @pytest.mark.asyncio
    async def test_unknown_id_404(self, client):
        resp = await client.get("/api/detections/deadbeef")
        assert resp.status_code == 404
        body = resp.json()
        assert body["detail"] == "Detection not found"
        assert body["error"] is True
        assert resp.headers["X-Request-ID"] == body["request_id"]


class TestStatsAndHistory:
    @pytest.mark.asyncio
    async def test_stats(self, client):
        resp = await client.get("/api/stats")
        assert resp.status_code == 200
        assert resp.json() == {
            "total_detections": 3,
            "recent_detections": 2,
            "detection_types": {"Small JAR File": 1, "Suspicious File": 1, "WhatsApp Bot": 1},
            "by_node": {"node-a": 1},
        }

    @pytest.mark.asyncio
    async def test_history_newest_first(self, client):
        resp = await client.get("/api/history/srv-1")
        data = resp.json()
        assert data["total"] == 2
        assert [d["types"] for d in data["detections"]] == [["Suspicious File"], ["Small JAR File"]]

    @pytest.mark.asyncio
    async def test_history_unknown_server(self, client):
        resp = await client.get("/api/history/nope")
        assert resp.json() == {"total": 0, "detections": []}


class TestScan:
    @pytest.mark.asyncio
    async def test_scan_returns_detection(self, client, engine, make_detection):
        detection = make_detection(types=["Suspicious Process"], processes=["xmrig"])
        engine.scan_container = AsyncMock(return_value=detection)

        resp = await client.post("/api/scan/abc123def456")

        assert resp.status_code == 200
        assert resp.json()["id"] == detection.id
        engine.scan_container.assert_awaited_once_with("abc123def456")

    @pytest.mark.asyncio
    async def test_clean_scan_returns_unstored_detection(self, client, engine, store, make_detection):
        clean = make_detection(volume_size=512.0, logs="Done (4.2s)! For help, type \"help\"")
        clean.metrics.cpu = 12.5
        engine.scan_container = AsyncMock(return_value=clean)

        resp = await client.post("/api/scan/abc123def456")

        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == clean.id
        assert data["types"] == []
        assert data["volume_size"] == 512.0
        assert data["metrics"]["cpu"] == 12.5
        assert len(store) == 3

    @pytest.mark.asyncio
    async def test_cooldown_skip_returns_null(self, client, engine):
        engine.scan_container = AsyncMock(return_value=None)

        resp = await client.post("/api/scan/abc123def456")

        assert resp.status_code == 200
        assert resp.json() is None

    @pytest.mark.asyncio
    async def test_missing_volume_500_with_message(self, client, engine):
        engine.scan_container = AsyncMock(side_effect=MissingVolumeError("abc123def456"))

        resp = await client.post("/api/scan/abc123def456")

        assert resp.status_code == 500
        assert resp.json()["detail"] == "No volume found for container abc123def456"

    @pytest.mark.asyncio
    async def test_runtime_error_500_with_message(self, client, engine):
        engine.scan_container = AsyncMock(side_effect=RuntimeError("No such container: abc"))

        resp = await client.post("/api/scan/abc")

        assert resp.status_code == 500
        assert resp.json()["detail"] == "No such container: abc"


class TestAuth:
    @pytest.mark.asyncio
    async def test_token_required_when_configured(self, client, config):
        config.api_token = "s3cret"

        assert (await client.get("/api/stats")).status_code == 401
        wrong = await client.get("/api/stats", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401
        ok = await client.get("/api/stats", headers={"Authorization": "Bearer s3cret"})
        assert ok.status_code == 200

    @pytest.mark.asyncio
    async def test_health_not_behind_token(self, client, config):
        config.api_token = "s3cret"

        resp = await client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["stored_detections"] == 3
        assert data["hash_store"]["enabled"] is False

    @pytest.mark.asyncio
    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["name"] == "RADAR"
