"""Aggregate detection statistics."""

from fastapi import APIRouter, Depends

from ...dependencies import get_detection_store
from ...engine.detection_store import DetectionStore

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("")
async def get_stats(store: DetectionStore = Depends(get_detection_store)):
    return store.stats()
