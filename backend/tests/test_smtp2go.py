"""Tests for the SMTP2Go SMS/email transport (HTTP mocked)."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from auma.services.notifications.errors import NotificationTransportError, TransportNotConfigured
from auma.services.notifications.smtp2go import (
    SMTP2GO_EMAIL_URL,
    SMTP2GO_SMS_URL,
    Smtp2GoClient,
)


def _fake_response(status_code: int = 200, body: dict | None = None):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = "error body" if status_code >= 400 else ""
    resp.json.return_value = body if body is not None else {"data": {"succeeded": 1}}
    return resp


def _mock_client(response=None, side_effect=None):
    mock_post = AsyncMock(return_value=response or _fake_response(), side_effect=side_effect)
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = mock_post
    return mock_client, mock_post


def _client(**overrides):
    kwargs = dict(api_key="api-test", sender="noreply@auma.test", environment="production")
    kwargs.update(overrides)
    return Smtp2GoClient(**kwargs)


class TestSendSms:
    @pytest.mark.asyncio
    async def test_posts_payload_with_api_key(self):
        mock_client, mock_post = _mock_client()
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            await _client().send_sms("+15550001111", "AUMA Alert")

        call = mock_post.call_args
        assert call.args[0] == SMTP2GO_SMS_URL
        assert call.kwargs["json"] == {"sender": "AUMA", "to": ["+15550001111"], "message": "AUMA Alert"}
        assert call.kwargs["headers"] == {"X-Smtp2go-Api-Key": "api-test"}

    @pytest.mark.asyncio
    async def test_sandbox_phone_outside_production(self):
        mock_client, mock_post = _mock_client()
        client = _client(environment="development", sandbox_phone="+15559999999")
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            await client.send_sms("+15550001111", "hi")
        assert mock_post.call_args.kwargs["json"]["to"] == ["+15559999999"]

    @pytest.mark.asyncio
    async def test_sandbox_ignored_in_production(self):
        mock_client, mock_post = _mock_client()
        client = _client(environment="production", sandbox_phone="+15559999999")
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            await client.send_sms("+15550001111", "hi")
        assert mock_post.call_args.kwargs["json"]["to"] == ["+15550001111"]

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        with pytest.raises(TransportNotConfigured):
            await _client(api_key="").send_sms("+15550001111", "hi")

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        mock_client, _ = _mock_client(response=_fake_response(status_code=401))
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(NotificationTransportError) as exc_info:
                await _client().send_sms("+15550001111", "hi")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        mock_client, _ = _mock_client(side_effect=httpx.ConnectError("refused"))
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            with pytest.raises(NotificationTransportError):
                await _client().send_sms("+15550001111", "hi")


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_posts_html_body(self):
        mock_client, mock_post = _mock_client()
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            result = await _client().send_email("dana@example.com", "Subject", "<p>hi</p>")

        call = mock_post.call_args
        assert call.args[0] == SMTP2GO_EMAIL_URL
        assert call.kwargs["json"] == {
            "sender": "noreply@auma.test",
            "to": ["dana@example.com"],
            "subject": "Subject",
            "html_body": "<p>hi</p>",
        }
        assert result == {"data": {"succeeded": 1}}

    @pytest.mark.asyncio
    async def test_sandbox_email_outside_production(self):
        mock_client, mock_post = _mock_client()
        client = _client(environment="staging", sandbox_email="qa@auma.test")
        with patch("auma.services.notifications.smtp2go.httpx.AsyncClient", return_value=mock_client):
            await client.send_email("dana@example.com", "s", "b")
        assert mock_post.call_args.kwargs["json"]["to"] == ["qa@auma.test"]
