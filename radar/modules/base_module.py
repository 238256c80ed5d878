"""Lifecycle shell shared by Radar's background loops."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from ..utils.logging import get_logger


class BaseModule(ABC):
    """A named background loop with running/stopped bookkeeping.

    Subclasses implement ``start``/``stop`` and report their own counters
    through ``health_details``; ``health_check`` and ``get_status`` wrap
    those details in the common envelope.
    """

    def __init__(self, name: str, config: dict | None = None):
        self.name = name
        self.config = config or {}
        self.running = False
        self.health_status = "initialized"
        self.started_at: Optional[datetime] = None
        self.last_heartbeat: Optional[datetime] = None
        self.logger = get_logger(f"module.{name}").bind(module=name)

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    def mark_running(self) -> None:
        self.running = True
        self.health_status = "running"
        self.started_at = datetime.now(timezone.utc)
        self.heartbeat()

    def mark_stopped(self) -> None:
        self.running = False
        self.health_status = "stopped"

    def heartbeat(self) -> None:
        self.last_heartbeat = datetime.now(timezone.utc)

    def health_details(self) -> dict:
        return {}

    async def health_check(self) -> dict:
        self.heartbeat()
        return {"status": self.health_status, "details": self.health_details()}

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "running": self.running,
            "health_status": self.health_status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            **self.health_details(),
        }
