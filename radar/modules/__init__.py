"""Background modules package."""

from .base_module import BaseModule
from .scan_scheduler import ScanScheduler

__all__ = [
    "BaseModule",
    "ScanScheduler",
]
