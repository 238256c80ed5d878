"""Detection Engine — one scan of one container, from inspection to dispatch.

Classification (``build_detection``) only gathers evidence. Storing the
result and handing it to the alerting sink happen in ``scan_container`` once
the Detection is complete.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from ..intel.hash_store import HashIntelligenceStore
from ..models.detection import Detection
from ..scanner.container_inspector import ContainerContext, ContainerInspector
from ..scanner.volume_inspector import VolumeInspector
from ..utils.logging import get_logger
from .detection_store import DetectionStore

logger = get_logger("engine.detection_engine")

DetectionHandler = Callable[[Detection], Awaitable[None]]


# Epoch values above this are milliseconds (1e11 s is past the year 5000)
_EPOCH_MS_CUTOFF = 1e11


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_CUTOFF else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class DetectionEngine:
    """Composes the container and volume inspectors into Detections."""

    def __init__(
        self,
        container_inspector: ContainerInspector,
        volume_inspector: VolumeInspector,
        hash_store: HashIntelligenceStore,
        store: DetectionStore,
        flag_cooldown_hours: int = 24,
    ):
        self._containers = container_inspector
        self._volumes = volume_inspector
        self._hash_store = hash_store
        self._store = store
        self._flag_cooldown = timedelta(hours=flag_cooldown_hours)
        self._handler: Optional[DetectionHandler] = None

    def set_detection_handler(self, handler: DetectionHandler) -> None:
        """Attach the callback that receives every stored Detection."""
        self._handler = handler
        logger.info("detection_handler_attached")

    @property
    def store(self) -> DetectionStore:
        return self._store

    async def list_containers(self) -> list[str]:
        return await self._containers.list_running()

    async def scan_container(self, container_id: str) -> Optional[Detection]:
        """Scan one container.

        Returns None when the server is inside its flag cooldown. Otherwise
        returns the Detection, which is stored and dispatched only if it holds
        any finding. Inspection errors propagate to the caller.
        """
        ctx = await self._containers.resolve(container_id)

        if await self.recently_flagged(ctx.volume_id):
            logger.info("scan_skipped_recently_flagged", volume_id=ctx.volume_id)
            return None

        detection = await self.build_detection(ctx)

        if not detection.has_findings():
            logger.debug("scan_clean", container_id=ctx.container_id, volume_id=ctx.volume_id)
            return detection

        self._store.add(detection)
        logger.warning(
            "detection_stored",
            detection_id=detection.id,
            container_id=detection.container_id,
            volume_id=detection.volume_id,
            types=detection.types,
        )
        await self._dispatch(detection)
        await self._store.persist(detection)
        return detection

    async def build_detection(self, ctx: ContainerContext) -> Detection:
        """Run both inspectors and return the populated Detection."""
        detection = Detection(container_id=ctx.container_id, volume_id=ctx.volume_id)

        loop = asyncio.get_event_loop()
        detection.volume_size = await loop.run_in_executor(
            None, self._volumes.directory_size, ctx.volume_path
        )

        await self._containers.inspect(ctx, detection)
        await self._volumes.inspect(ctx.volume_path, detection)
        return detection

    async def recently_flagged(self, server_id: str, now: Optional[datetime] = None) -> bool:
        """True if the authority flagged this server within the cooldown window.

        An unknown flag state (authority unreachable) counts as not flagged.
        """
        flag = await self._hash_store.is_flagged(server_id)
        if not flag or not flag.get("times_flagged"):
            return False
        last_flagged = _parse_timestamp(flag.get("last_flagged"))
        if last_flagged is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - last_flagged < self._flag_cooldown

    async def _dispatch(self, detection: Detection) -> None:
        if self._handler is None:
            return
        try:
            await self._handler(detection)
        except Exception as e:
            logger.error("detection_dispatch_failed", detection_id=detection.id, error=str(e))
