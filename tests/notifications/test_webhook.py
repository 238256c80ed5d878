"""Tests for WebhookSender — HTTP delivery and Discord/Slack/generic formatting."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from radar.notifications.webhook import WebhookSender

REPORT = {
    "title": "Abuse Detection on node-3 (n3.example.com)",
    "description": "Detailed incident report below",
    "color": 0x242424,
    "fields": [{"name": "Detection Type(s)", "value": "Small JAR File", "inline": True}],
}


def _mock_httpx_response(status_code=200):
    """Create a mock httpx Response."""
    response = MagicMock()
    response.status_code = status_code
    response.raise_for_status = MagicMock()
    return response


def _mock_client(post):
    client = AsyncMock()
    client.post = post
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestSendWebhook:
    @pytest.mark.asyncio
    async def test_discord_receives_embeds(self):
        client = _mock_client(AsyncMock(return_value=_mock_httpx_response()))

        with patch("radar.notifications.webhook.httpx.AsyncClient", return_value=client):
            result = await WebhookSender().send("https://discord.com/api/webhooks/1/x", REPORT)

        assert result is True
        body = client.post.call_args[1]["json"]
        assert body == {"embeds": [REPORT]}

    @pytest.mark.asyncio
    async def test_http_error_returns_false(self):
        response = _mock_httpx_response(status_code=500)
        response.text = "boom"
        response.raise_for_status = MagicMock(side_effect=httpx.HTTPStatusError(
            "server error", request=MagicMock(), response=response,
        ))
        client = _mock_client(AsyncMock(return_value=response))

        with patch("radar.notifications.webhook.httpx.AsyncClient", return_value=client):
            result = await WebhookSender().send("https://hooks.example.com/x", REPORT)

        assert result is False

    @pytest.mark.asyncio
    async def test_connection_error_returns_false(self):
        client = _mock_client(AsyncMock(side_effect=httpx.ConnectError("refused")))

        with patch("radar.notifications.webhook.httpx.AsyncClient", return_value=client):
            result = await WebhookSender().send("https://hooks.example.com/x", REPORT)

        assert result is False


class TestFormatting:
    def test_slack_text_only(self):
        body = WebhookSender().format_payload("https://hooks.slack.com/services/T/B/x", REPORT)

        assert list(body) == ["text"]
        assert body["text"].startswith("[RADAR] Abuse Detection on node-3")
        assert "Detection Type(s):\nSmall JAR File" in body["text"]

    def test_generic_includes_report(self):
        body = WebhookSender().format_payload("https://hooks.example.com/x", REPORT)

        assert "text" in body
        assert body["fields"] == REPORT["fields"]
        assert body["title"] == REPORT["title"]
