"""Hosting control-plane client — server, user and node lookups plus suspension."""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from ..errors import PlatformAPIError
from ..utils.logging import get_logger

logger = get_logger("platform.client")


class PlatformClient:
    """Wraps the control plane's application API.

    The server list is cached for ``servers_ttl`` seconds. Users and nodes are
    cached for the lifetime of the process; their identity data rarely changes.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        servers_ttl: float = 300.0,
        page_size: int = 100,
        recent_account_days: int = 7,
        timeout: float = 30.0,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._servers_ttl = servers_ttl
        self._page_size = page_size
        self._recent_account_threshold = timedelta(days=recent_account_days)
        self._timeout = timeout
        self._timer = timer

        self._servers: Optional[list[dict]] = None
        self._servers_fetched_at: float = 0.0
        self._users: dict[int, dict] = {}
        self._nodes: dict[int, dict] = {}

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _request(self, endpoint: str, method: str = "GET", params: dict | None = None) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method,
                    f"{self._api_url}/{endpoint}",
                    headers=self._headers(),
                    params=params,
                )
                response.raise_for_status()
                if not response.content:
                    return {}
                return response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "platform_api_http_error",
                endpoint=endpoint,
                status=exc.response.status_code,
            )
            raise PlatformAPIError(
                endpoint, f"HTTP {exc.response.status_code}", exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("platform_api_error", endpoint=endpoint, error=str(exc))
            raise PlatformAPIError(endpoint, str(exc)) from exc

    async def list_servers(self, force: bool = False) -> list[dict]:
        """Return the attributes of every server on the panel."""
        if (
            not force
            and self._servers is not None
            and self._timer() - self._servers_fetched_at < self._servers_ttl
        ):
            return self._servers

        servers: list[dict] = []
        page = 1
        while True:
            body = await self._request(
                "servers", params={"page": page, "per_page": self._page_size}
            )
            servers.extend(item.get("attributes", {}) for item in body.get("data", []))
            pagination = body.get("meta", {}).get("pagination", {})
            if page >= pagination.get("total_pages", 1):
                break
            page += 1

        self._servers = servers
        self._servers_fetched_at = self._timer()
        logger.debug("platform_servers_fetched", count=len(servers))
        return servers

    async def server_by_volume_uuid(self, uuid: str) -> Optional[dict]:
        """Find the server whose UUID names the given volume directory (linear scan)."""
        for server in await self.list_servers():
            if server.get("uuid") == uuid:
                return server
        return None

    async def user_by_id(self, user_id: int) -> dict:
        if user_id in self._users:
            return self._users[user_id]
        body = await self._request(f"users/{user_id}")
        self._users[user_id] = body.get("attributes", {})
        return self._users[user_id]

    async def node_by_id(self, node_id: int) -> dict:
        if node_id in self._nodes:
            return self._nodes[node_id]
        body = await self._request(f"nodes/{node_id}")
        self._nodes[node_id] = body.get("attributes", {})
        return self._nodes[node_id]

    async def suspend(self, server_id: int) -> bool:
        """Suspend a server. Never raises; returns whether the panel accepted it."""
        try:
            await self._request(f"servers/{server_id}/suspend", method="POST")
        except PlatformAPIError as exc:
            logger.error("server_suspend_failed", server_id=server_id, error=str(exc))
            return False
        logger.info("server_suspended", server_id=server_id)
        return True

    def is_recent_account(self, created_at: str | datetime | None) -> bool:
        """True when the account was created within the recent-account threshold."""
        if not created_at:
            return False
        if isinstance(created_at, str):
            try:
                created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
            except ValueError:
                return False
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - created_at < self._recent_account_threshold
