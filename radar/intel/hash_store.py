"""Hash intelligence store — known-malicious file hashes and server flag history.

Keeps a bounded local cache in front of an optional remote hash authority.
The authority is the system of record; everything held here is a cache that
may be lost or replaced at any time.
"""

import time
from typing import Callable, Optional

import httpx

from ..utils.cache import LRUCache
from ..utils.logging import get_logger

logger = get_logger("intel.hash_store")


class HashIntelligenceStore:
    """Local cache + remote authority pairing used to recognise malicious files."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        sync_interval: float = 180.0,
        hash_cache_size: int = 10_000,
        server_cache_size: int = 1_000,
        server_cache_ttl: float = 1800.0,
        timeout: float = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_url = api_url.rstrip("/") if api_url else None
        self._sync_interval = sync_interval
        self._timeout = timeout
        self._timer = timer
        # Hash entries live until the next successful full-replace sync
        self._hashes = LRUCache(max_entries=hash_cache_size, timer=timer)
        self._servers = LRUCache(max_entries=server_cache_size, default_ttl=server_cache_ttl, timer=timer)
        self._last_sync: Optional[float] = None
        self._last_attempt: Optional[float] = None
        self._last_sync_count = 0

    @property
    def enabled(self) -> bool:
        return self._api_url is not None

    def _sync_due(self) -> bool:
        if self._last_attempt is None:
            return True
        return self._timer() - self._last_attempt >= self._sync_interval

    @staticmethod
    def _parse_hash_records(records) -> Optional[dict]:
        """Map a ``/api/hashes`` body to cache entries, or None if it is not a list of records."""
        if not isinstance(records, list):
            return None
        entries: dict = {}
        for record in records:
            if not isinstance(record, dict):
                return None
            file_hash = record.get("hash")
            if not file_hash or not isinstance(file_hash, str):
                continue
            entries[file_hash] = {
                "file_name": record.get("file_name"),
                "detection_type": record.get("detection_type"),
            }
        return entries

    async def sync(self, force: bool = False) -> bool:
        """Replace the local hash cache with the authority's full hash set.

        Returns True when a sync happened. Failures, including malformed
        bodies, are logged and the previous cache contents stay in place.
        A failed attempt is not retried before the next sync interval.
        """
        if not self.enabled:
            return False
        if not force and not self._sync_due():
            return False

        self._last_attempt = self._timer()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(f"{self._api_url}/api/hashes")
                response.raise_for_status()
                records = response.json()
            entries = self._parse_hash_records(records)
        except httpx.HTTPStatusError as exc:
            logger.error("hash_sync_http_error", status=exc.response.status_code)
            return False
        except Exception as exc:
            logger.error("hash_sync_failed", error=str(exc))
            return False

        if entries is None:
            logger.error("hash_sync_invalid_payload", payload_type=type(records).__name__)
            return False

        self._hashes.clear()
        for file_hash, entry in entries.items():
            self._hashes.set(file_hash, entry)
        self._last_sync = self._last_attempt
        self._last_sync_count = len(records)
        logger.info("hashes_synced", count=len(records))
        return True

    async def lookup(self, file_hash: str) -> Optional[dict]:
        """Return ``{file_name, detection_type}`` for a known hash, or None."""
        await self.sync()
        return self._hashes.get(file_hash)

    async def submit(
        self,
        file_hash: str,
        file_name: str,
        detection_type: str,
        server_id: str,
        metadata: Optional[dict] = None,
    ) -> None:
        """Report a hash to the authority and remember it locally.

        The local write happens whatever the remote outcome so the same hash
        is recognised for the rest of the cycle.
        """
        self._hashes.set(file_hash, {"file_name": file_name, "detection_type": detection_type})
        if not self.enabled:
            return

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._api_url}/api/hashes",
                    json={
                        "hash": file_hash,
                        "fileName": file_name,
                        "detectionType": detection_type,
                        "serverIdentifier": server_id,
                        "metadata": metadata or {},
                    },
                )
                response.raise_for_status()
            logger.debug("hash_submitted", hash=file_hash, detection_type=detection_type)
        except Exception as exc:
            logger.error("hash_submit_failed", hash=file_hash, error=str(exc))

    async def is_flagged(self, server_id: str) -> Optional[dict]:
        """Return the authority's flag record for a server.

        None means *unknown* (no authority, or it could not be reached), not
        clean. Callers proceed with the scan on None.
        """
        cached = self._servers.get(server_id)
        if cached is not None:
            return cached
        if not self.enabled:
            return None

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(f"{self._api_url}/api/servers/{server_id}")
                response.raise_for_status()
                result = response.json()
        except Exception as exc:
            logger.error("server_flag_check_failed", server_id=server_id, error=str(exc))
            return None

        if result:
            self._servers.set(server_id, result)
        return result

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "cached_hashes": len(self._hashes),
            "cached_servers": len(self._servers),
            "last_sync_count": self._last_sync_count,
            "seconds_since_sync": (
                round(self._timer() - self._last_sync, 1) if self._last_sync is not None else None
            ),
        }
