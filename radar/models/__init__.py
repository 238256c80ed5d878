"""Data models package."""

from .base import Base
from .detection import Detection, FileFinding, HashMatch, Metrics
from .detection_record import DetectionRecord

__all__ = [
    "Base",
    "Detection",
    "DetectionRecord",
    "FileFinding",
    "HashMatch",
    "Metrics",
]
