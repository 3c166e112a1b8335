"""Tests for inspectr.notifier Slack output."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from helpers import make_result, mock_httpx_client
from inspectr.config import settings
from inspectr.notifier import capped_string, format_upgrades, output_results, send_slack


# ---------------------------------------------------------------------------
# formatting
# ---------------------------------------------------------------------------


class TestCappedString:
    def test_single(self):
        assert capped_string(["v0.0.1"]) == "v0.0.1"

    def test_capped(self):
        values = ["v0.0.1", "v0.0.2", "v0.0.3", "v0.0.4", "v0.0.5", "v0.0.6"]
        assert capped_string(values) == "v0.0.1, v0.0.2, v0.0.3, v0.0.4, v0.0.5 + 1 more"

    def test_empty(self):
        assert capped_string([]) == ""


def test_format_upgrades():
    text = format_upgrades(
        {
            "proj:clus:nginx:web:app": [
                make_result("1.0", "ns1", ["1.1", "1.2"]),
                make_result("1.0", "ns2", ["1.1", "1.2"]),
            ]
        }
    )
    assert text == (
        "```project: proj\n"
        "cluster: clus\n"
        "image: nginx\n"
        "namespaces: ns1, ns2\n"
        "current-versions: 1.0, 1.0\n"
        "new-versions: 1.1, 1.2, 1.1, 1.2```\n"
    )


# ---------------------------------------------------------------------------
# send_slack
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_send_slack_not_configured(monkeypatch):
    """Returns False when no webhook id is set."""
    monkeypatch.setattr(settings, "slack_webhook_id", None)
    assert await send_slack("hello") is False


@pytest.mark.asyncio
async def test_send_slack_success(monkeypatch):
    monkeypatch.setattr(settings, "slack_webhook_id", "T000/B000/XXX")
    client = mock_httpx_client()
    with patch("inspectr.notifier.httpx.AsyncClient", return_value=client):
        assert await send_slack("hello") is True

    client.post.assert_awaited_once_with(
        "https://hooks.slack.com/services/T000/B000/XXX",
        json={"text": "hello", "username": "inspectr"},
    )


@pytest.mark.asyncio
async def test_send_slack_http_error(monkeypatch):
    """Returns False, does not raise, when the webhook call fails."""
    monkeypatch.setattr(settings, "slack_webhook_id", "T000/B000/XXX")
    client = mock_httpx_client(raise_on_call=httpx.ConnectError("refused"))
    with patch("inspectr.notifier.httpx.AsyncClient", return_value=client):
        assert await send_slack("hello") is False


# ---------------------------------------------------------------------------
# output_results
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_output_results_nothing_outside_window():
    with patch("inspectr.notifier.send_slack", new=AsyncMock()) as send:
        assert await output_results({}, within_window=False) is None
    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_output_results_empty_report_in_window():
    with patch("inspectr.notifier.send_slack", new=AsyncMock(return_value=True)) as send:
        assert await output_results({}, within_window=True) is True
    send.assert_awaited_once_with("")


@pytest.mark.asyncio
async def test_output_results_sends_upgrades():
    upgrades = {"proj:clus:nginx:web:app": [make_result("1.0", "ns1", ["1.1"])]}
    with patch("inspectr.notifier.send_slack", new=AsyncMock(return_value=True)) as send:
        await output_results(upgrades, within_window=False)
    assert "new-versions: 1.1" in send.await_args.args[0]
