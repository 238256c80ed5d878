"""Webhook notification sender — supports generic, Slack, and Discord formats."""

import httpx

from ..utils.logging import get_logger

logger = get_logger("notifications.webhook")


class WebhookSender:
    """Sends detection reports via HTTP webhooks.

    Auto-detects Slack and Discord webhook URLs and formats the report
    accordingly. Falls back to raw JSON POST for generic webhooks.
    """

    def __init__(self, timeout: float = 30):
        self._timeout = timeout

    async def send(
        self, url: str, report: dict, headers: dict | None = None
    ) -> bool:
        """Send a report to a webhook URL.

        Args:
            url: The webhook endpoint URL.
            report: Embed-shaped report with ``title``, ``description``,
                ``color`` and a list of ``fields``.
            headers: Optional additional HTTP headers.

        Returns:
            True if the webhook responded successfully, False otherwise.
        """
        send_headers = {"Content-Type": "application/json"}
        if headers:
            send_headers.update(headers)

        body = self.format_payload(url, report)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=body, headers=send_headers)
                response.raise_for_status()
                logger.info("webhook_sent", status=response.status_code)
                return True
        except httpx.HTTPStatusError as exc:
            logger.error(
                "webhook_http_error",
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except Exception as exc:
            logger.error("webhook_send_error", error=str(exc))
            return False

    def format_payload(self, url: str, report: dict) -> dict:
        """Wrap the report in the platform-specific message format."""
        if "discord.com" in url or "discordapp.com" in url:
            return {"embeds": [report]}

        message = self.build_message_text(report)

        if "hooks.slack.com" in url:
            return {"text": message}

        # Generic webhook — send raw report with a summary text field
        return {
            "text": message,
            **report,
        }

    @staticmethod
    def build_message_text(report: dict) -> str:
        """Flatten an embed-shaped report into plain text."""
        parts = [f"[RADAR] {report.get('title', 'Abuse Detection')}"]
        if report.get("description"):
            parts.append(report["description"])
        for field in report.get("fields", []):
            parts.append(f"{field['name']}:\n{field['value']}")
        return "\n\n".join(parts)
