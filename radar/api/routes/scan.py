"""On-demand scan route — scans one container immediately, outside the schedule."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ...dependencies import get_detection_engine
from ...engine.detection_engine import DetectionEngine
from ...errors import RadarError
from ...models.detection import Detection
from ...utils.logging import get_logger

logger = get_logger("api.scan")

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("/{container_id}", response_model=Optional[Detection])
async def scan_container(
    container_id: str, engine: DetectionEngine = Depends(get_detection_engine)
):
    """Scan a container now.

    Returns the Detection (stored only when it holds findings), or null when
    the server is inside the flag cooldown.
    """
    logger.info("manual_scan_requested", container_id=container_id)
    try:
        detection = await engine.scan_container(container_id)
    except RadarError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

    return detection
