"""Master API router — includes all Control API sub-routers."""

from fastapi import APIRouter, Depends

from ..dependencies import require_api_token
from .routes.detections import router as detections_router
from .routes.history import router as history_router
from .routes.scan import router as scan_router
from .routes.stats import router as stats_router

api_router = APIRouter(prefix="/api", dependencies=[Depends(require_api_token)])

api_router.include_router(detections_router)
api_router.include_router(scan_router)
api_router.include_router(stats_router)
api_router.include_router(history_router)
