"""RADAR — container abuse detection daemon.

FastAPI entry point with lifespan management for the scan loop, persistence
and retention.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI

from . import __version__
from .api.router import api_router
from .config import get_config
from .database import close_engine, create_tables, get_session_factory
from .dependencies import (
    get_alert_sink,
    get_detection_engine,
    get_detection_store,
    get_hash_store,
    get_scan_scheduler,
)
from .engine.detection_store import DetectionStore
from .intel.hash_store import HashIntelligenceStore
from .middleware.error_handler import register_error_handlers
from .middleware.request_id import RequestIDMiddleware
from .modules.scan_scheduler import ScanScheduler
from .utils.logging import get_logger, setup_logging

config = get_config()
setup_logging(
    app_name=config.app_name,
    scanner_id=config.scanner_id,
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("radar.main")

_background_tasks: dict[str, asyncio.Task] = {}


async def _retention_cleanup_loop(factory):
    from .maintenance.retention import RetentionManager

    rm = RetentionManager(db_session_factory=factory, config=config)
    while True:
        try:
            await asyncio.sleep(config.retention_interval)
            logger.info("retention_cleanup_starting")
            summary = await rm.run_cleanup()
            logger.info("retention_cleanup_complete", summary=summary)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("retention_cleanup_error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    # --- Startup ---
    logger.info("radar_starting", host=config.host, port=config.port)

    store = get_detection_store()
    if config.persist_detections:
        await create_tables(config)
        factory = get_session_factory(config)
        store.set_session_factory(factory)
        await store.load_recent()
        _background_tasks["retention_cleanup"] = asyncio.create_task(
            _retention_cleanup_loop(factory)
        )

    if not config.webhook_url:
        logger.warning("webhook_url_not_configured")
    if not config.hash_api_url:
        logger.warning("hash_api_not_configured")

    engine = get_detection_engine()
    engine.set_detection_handler(get_alert_sink().handle)

    scheduler = get_scan_scheduler()
    await scheduler.start()

    logger.info("radar_started", app=config.app_name)

    yield

    # --- Shutdown ---
    logger.info("radar_shutting_down")

    try:
        await asyncio.wait_for(scheduler.stop(), timeout=5.0)
    except asyncio.TimeoutError:
        logger.error("scan_scheduler_stop_timeout")

    for task in _background_tasks.values():
        if not task.done():
            task.cancel()
    pending = [t for t in _background_tasks.values() if not t.done()]
    if pending:
        await asyncio.wait(pending, timeout=3.0)

    await close_engine()
    logger.info("radar_stopped")


app = FastAPI(
    title="RADAR",
    description="Container abuse detection for game-server hosting nodes",
    version=__version__,
    lifespan=lifespan,
)

register_error_handlers(app)

# Request ID — correlation IDs on every request
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.get("/")
async def root():
    return {"name": config.app_name, "version": __version__, "status": "running"}


@app.get("/health")
async def health(
    scheduler: ScanScheduler = Depends(get_scan_scheduler),
    hash_store: HashIntelligenceStore = Depends(get_hash_store),
    store: DetectionStore = Depends(get_detection_store),
):
    """Scan loop, hash store and detection store health."""
    scheduler_health = await scheduler.health_check()
    return {
        "status": "healthy" if scheduler_health["status"] == "running" else "degraded",
        "scan_scheduler": scheduler_health,
        "hash_store": hash_store.stats(),
        "stored_detections": len(store),
    }


def main():
    """Run the RADAR server."""
    uvicorn.run(
        "radar.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
