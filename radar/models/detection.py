"""Detection contracts — Pydantic models describing one container scan's findings."""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _new_detection_id() -> str:
    return secrets.token_hex(4)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Metrics(BaseModel):
    cpu: float = 0.0  # percent
    memory: float = 0.0  # MB
    network: float = 0.0  # MB received + transmitted


class FileFinding(BaseModel):
    path: str
    reason: str
    hash: Optional[str] = None
    size: Optional[int] = None


class HashMatch(BaseModel):
    file_name: str
    detection_type: str
    stored_file_name: Optional[str] = None


class Detection(BaseModel):
    """One scan's aggregated evidence and classification for a single container.

    Only the scan that created it mutates a Detection. ``types`` is an
    append-only list: the same category may appear more than once when
    several signals hit it.
    """

    id: str = Field(default_factory=_new_detection_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    container_id: str
    volume_id: str
    node: Optional[str] = None

    types: list[str] = []
    metrics: Metrics = Field(default_factory=Metrics)
    processes: list[str] = []
    files: list[FileFinding] = []
    cache: list[str] = []
    npm: list[str] = []
    network: list[str] = []
    suspicious_content: list[str] = []
    hash_matches: list[HashMatch] = []
    logs: str = ""
    volume_size: float = 0.0  # MB

    def add_type(self, detection_type: str) -> None:
        self.types.append(detection_type)

    def has_findings(self) -> bool:
        """True when any evidence list or the type list is non-empty."""
        return bool(
            self.types
            or self.processes
            or self.files
            or self.cache
            or self.npm
            or self.network
            or self.suspicious_content
            or self.hash_matches
        )
