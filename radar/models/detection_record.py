"""Detection record model — persisted copy of a stored Detection."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class DetectionRecord(Base):
    __tablename__ = "detections"
    __table_args__ = (
        Index("ix_detections_volume_timestamp", "volume_id", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    container_id: Mapped[str] = mapped_column(String(64), nullable=False)
    volume_id: Mapped[str] = mapped_column(String(64), nullable=False)
    types_json: Mapped[str] = mapped_column(Text, nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
