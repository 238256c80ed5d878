"""Per-server detection history."""

from fastapi import APIRouter, Depends

from ...dependencies import get_detection_store
from ...engine.detection_store import DetectionStore

router = APIRouter(prefix="/history", tags=["history"])


@router.get("/{server_identifier}")
async def get_history(server_identifier: str, store: DetectionStore = Depends(get_detection_store)):
    """Detections whose volume (server UUID) or container id matches, newest first."""
    detections = store.history(server_identifier)
    return {"total": len(detections), "detections": detections}
