"""Detection routes — list and fetch stored detections."""

from fastapi import APIRouter, Depends, HTTPException

from ...dependencies import get_detection_store
from ...engine.detection_store import DetectionStore
from ...models.detection import Detection

router = APIRouter(prefix="/detections", tags=["detections"])


@router.get("")
async def list_detections(store: DetectionStore = Depends(get_detection_store)):
    detections = store.all()
    return {"total": len(detections), "detections": detections}


@router.get("/{detection_id}", response_model=Detection)
async def get_detection(detection_id: str, store: DetectionStore = Depends(get_detection_store)):
    detection = store.get(detection_id)
    if detection is None:
        raise HTTPException(status_code=404, detail="Detection not found")
    return detection
