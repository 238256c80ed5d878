"""Alert & Enforcement Sink — turns a stored Detection into a report and a suspension.

The sink is the Detection Engine's handler. It enriches the Detection with
control-plane context, delivers one webhook report and suspends the server
when the Detection carries at least one category.
"""

from datetime import datetime, timezone
from typing import Optional

from ..errors import PlatformAPIError
from ..models.detection import Detection
from ..notifications.webhook import WebhookSender
from ..platform.client import PlatformClient
from ..scanner.signatures import is_legitimate_log
from ..utils.logging import get_logger

logger = get_logger("alerting.sink")

COLOR_RECENT_ACCOUNT = 0xFF0000
COLOR_DEFAULT = 0x242424

# Discord embed limits
FIELD_VALUE_LIMIT = 1024
EMBED_TOTAL_LIMIT = 6000


def _time_ago(value: str | datetime | None, now: Optional[datetime] = None) -> str:
    """Render a timestamp as a coarse relative age, e.g. ``3 days ago``."""
    if not value:
        return "Unknown"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    seconds = int(((now or datetime.now(timezone.utc)) - value).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in (("year", 31_536_000), ("month", 2_592_000), ("day", 86_400),
                       ("hour", 3_600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"


def _code_block(lines: list[str]) -> str:
    return "```\n" + "\n".join(lines) + "\n```"


def _bounded_lines(lines: list[str], code: bool = False, limit: int = FIELD_VALUE_LIMIT) -> str:
    """Join whole lines up to ``limit`` characters, ending with ``... (N more)`` when cut."""
    budget = limit - (len(_code_block([])) if code else 0)
    if len("\n".join(lines)) > budget:
        reserve = len(f"\n... ({len(lines)} more)")
        kept: list[str] = []
        used = 0
        for line in lines:
            cost = len(line) + (1 if kept else 0)
            if used + cost > budget - reserve:
                break
            kept.append(line)
            used += cost
        lines = kept + [f"... ({len(lines) - len(kept)} more)"]
    return _code_block(lines) if code else "\n".join(lines)


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: max(limit - 3, 0)] + "..."


def _fit_fields(fields: list[dict], budget: int) -> list[dict]:
    """Clip each field to the per-field limit and drop trailing fields past ``budget``."""
    fitted = []
    for entry in fields:
        value = _clip(entry["value"], FIELD_VALUE_LIMIT)
        remaining = budget - len(entry["name"])
        if remaining < len(value):
            if remaining < 20:
                break
            value = _clip(value, remaining)
        fitted.append({**entry, "value": value})
        budget = remaining - len(value)
    return fitted


class AlertSink:
    """Formats, delivers and enforces on stored Detections."""

    def __init__(
        self,
        platform_client: Optional[PlatformClient],
        webhook_sender: WebhookSender,
        webhook_url: str = "",
        config: dict | None = None,
    ):
        cfg = config or {}
        self._platform = platform_client
        self._sender = webhook_sender
        self._webhook_url = webhook_url
        self._log_excerpt_chars: int = cfg.get("log_excerpt_chars", 500)

    async def handle(self, detection: Detection) -> None:
        server, user, node = await self._resolve_context(detection)
        if node:
            detection.node = node.get("name")

        recent_account = bool(user) and self._platform.is_recent_account(user.get("created_at"))
        report = self.build_report(detection, server, user, node, recent_account)

        if self._webhook_url:
            await self._sender.send(self._webhook_url, report)
        else:
            logger.info("webhook_skipped_no_url", detection_id=detection.id)

        if server and detection.types:
            suspended = await self._platform.suspend(server["id"])
            logger.warning(
                "server_suspension_attempted",
                server_id=server["id"],
                detection_id=detection.id,
                success=suspended,
            )

    async def _resolve_context(
        self, detection: Detection
    ) -> tuple[Optional[dict], Optional[dict], Optional[dict]]:
        """Look up server, owner and node. Each piece degrades to None on failure."""
        if self._platform is None or not detection.volume_id:
            return None, None, None

        try:
            server = await self._platform.server_by_volume_uuid(detection.volume_id)
        except PlatformAPIError as e:
            logger.warning("server_lookup_failed", volume_id=detection.volume_id, error=str(e))
            return None, None, None
        if server is None:
            return None, None, None

        user = node = None
        try:
            user = await self._platform.user_by_id(server.get("user"))
        except PlatformAPIError as e:
            logger.warning("user_lookup_failed", user_id=server.get("user"), error=str(e))
        try:
            node = await self._platform.node_by_id(server.get("node"))
        except PlatformAPIError as e:
            logger.warning("node_lookup_failed", node_id=server.get("node"), error=str(e))
        return server, user or None, node or None

    def build_report(
        self,
        detection: Detection,
        server: Optional[dict],
        user: Optional[dict],
        node: Optional[dict],
        recent_account: bool = False,
    ) -> dict:
        """Build the embed-shaped incident report for one Detection."""
        title_target = f"{node.get('name')} ({node.get('fqdn')})" if node else "Unknown Node"

        fields = [
            {
                "name": "Container Information",
                "value": "\n".join([
                    f"Volume UUID: {detection.volume_id}",
                    f"Panel ID: {server.get('id') if server else 'Unknown'}",
                    f"Docker ID: {detection.container_id}",
                    f"Server Name: {server.get('name') if server else 'Unknown'}",
                    f"Volume Size: {detection.volume_size:.2f}MB",
                ]),
                "inline": False,
            },
            {
                "name": "User Information",
                "value": self._user_section(user, recent_account),
                "inline": False,
            },
            {
                "name": "Resource Usage",
                "value": "\n".join([
                    f"CPU: {detection.metrics.cpu}%",
                    f"Memory: {detection.metrics.memory}MB",
                    f"Network: {detection.metrics.network}MB",
                    f"Disk: {detection.volume_size:.2f}MB",
                ]),
                "inline": True,
            },
            {
                "name": "Detection Type(s)",
                "value": ", ".join(detection.types) if detection.types else "None",
                "inline": True,
            },
        ]

        if detection.hash_matches:
            fields.append({
                "name": "Known Malicious Files",
                "value": _bounded_lines([
                    f"{m.file_name} ({m.detection_type})" for m in detection.hash_matches
                ]),
                "inline": False,
            })

        fields.extend([
            {
                "name": "Running Processes",
                "value": (
                    _bounded_lines(detection.processes, code=True)
                    if detection.processes else "None detected"
                ),
            },
            {
                "name": "Suspicious Files",
                "value": (
                    _bounded_lines([f"{f.path} ({f.reason})" for f in detection.files], code=True)
                    if detection.files else "None detected"
                ),
            },
            {
                "name": "Cache Analysis",
                "value": _bounded_lines(detection.cache) if detection.cache else "No suspicious cache files",
            },
            {
                "name": "NPM Analysis",
                "value": _bounded_lines(detection.npm) if detection.npm else "No suspicious NPM files",
            },
            {
                "name": "Network Activity",
                "value": _bounded_lines(detection.network) if detection.network else "No suspicious activity",
            },
            {
                "name": "Suspicious Content",
                "value": (
                    _bounded_lines(detection.suspicious_content)
                    if detection.suspicious_content else "None detected"
                ),
            },
        ])

        if detection.logs and not is_legitimate_log(detection.logs):
            excerpt_chars = min(self._log_excerpt_chars, FIELD_VALUE_LIMIT - len(_code_block([])))
            fields.append({
                "name": f"Last {excerpt_chars} chars of logs",
                "value": _code_block([detection.logs[-excerpt_chars:]]),
                "inline": False,
            })

        title = f"Abuse Detection on {title_target}"
        description = (
            "WARNING: Recently Created Account" if recent_account
            else "Detailed incident report below"
        )
        return {
            "title": title,
            "description": description,
            "color": COLOR_RECENT_ACCOUNT if recent_account else COLOR_DEFAULT,
            "fields": _fit_fields(fields, EMBED_TOTAL_LIMIT - len(title) - len(description)),
            "timestamp": detection.timestamp.isoformat(),
        }

    @staticmethod
    def _user_section(user: Optional[dict], recent_account: bool) -> str:
        if not user:
            return "Unknown User"
        lines = [
            f"ID: {user.get('id')}",
            f"Username: {user.get('username')}",
            f"Email: {user.get('email')}",
            f"Name: {user.get('first_name', '')} {user.get('last_name', '')}".rstrip(),
            f"Account Created: {_time_ago(user.get('created_at'))}",
        ]
        if recent_account:
            lines.append("**RECENT ACCOUNT**")
        return "\n".join(lines)
