"""Tests for outbound SMS delivery (services/sms_service.py)."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from creatordeals.config import settings
from creatordeals.services.sms_service import send_otp, send_sms


def _mock_client(response=None, error=None):
    instance = AsyncMock()
    if error is not None:
        instance.post.side_effect = error
    else:
        instance.post.return_value = response
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=None)
    return instance


def _configure(monkeypatch):
    monkeypatch.setattr(settings, "twilio_account_sid", "AC123")
    monkeypatch.setattr(settings, "twilio_auth_token", "secret")
    monkeypatch.setattr(settings, "twilio_from_number", "+15550009999")


async def test_send_sms_without_provider_only_logs(caplog):
    with patch("httpx.AsyncClient") as client_cls:
        with caplog.at_level("INFO", logger="creatordeals.services.sms_service"):
            assert await send_sms("+15551234567", "hello") is False
    client_cls.assert_not_called()
    assert "***4567" in caplog.text
    assert "+15551234567" not in caplog.text


async def test_unsent_passcode_is_not_logged_at_info(caplog):
    with caplog.at_level("INFO", logger="creatordeals.services.sms_service"):
        await send_otp("+15551234567", "482913")
    assert "not sent" in caplog.text
    assert "482913" not in caplog.text


async def test_unsent_passcode_only_at_debug_outside_production(monkeypatch, caplog):
    with caplog.at_level("DEBUG", logger="creatordeals.services.sms_service"):
        await send_otp("+15551234567", "482913")
    assert "482913" in caplog.text

    caplog.clear()
    monkeypatch.setattr(settings, "environment", "production")
    with caplog.at_level("DEBUG", logger="creatordeals.services.sms_service"):
        await send_otp("+15551234567", "482913")
    assert "482913" not in caplog.text


async def test_send_sms_posts_to_provider(monkeypatch):
    _configure(monkeypatch)
    response = MagicMock(status_code=201)
    instance = _mock_client(response)
    with patch("httpx.AsyncClient", return_value=instance):
        assert await send_sms("+15551234567", "hello") is True

    url = instance.post.call_args.args[0]
    kwargs = instance.post.call_args.kwargs
    assert url.endswith("/Accounts/AC123/Messages.json")
    assert kwargs["data"] == {"To": "+15551234567", "From": "+15550009999", "Body": "hello"}
    assert kwargs["auth"] == ("AC123", "secret")


async def test_send_sms_provider_rejection(monkeypatch):
    _configure(monkeypatch)
    with patch("httpx.AsyncClient", return_value=_mock_client(MagicMock(status_code=400))):
        assert await send_sms("+15551234567", "hello") is False


async def test_send_sms_network_error(monkeypatch):
    _configure(monkeypatch)
    error = httpx.ConnectError("connection refused")
    with patch("httpx.AsyncClient", return_value=_mock_client(error=error)):
        assert await send_sms("+15551234567", "hello") is False


async def test_send_otp_message_text(monkeypatch):
    _configure(monkeypatch)
    instance = _mock_client(MagicMock(status_code=201))
    with patch("httpx.AsyncClient", return_value=instance):
        await send_otp("+15551234567", "123456")
    body = instance.post.call_args.kwargs["data"]["Body"]
    assert body == f"Your verification code is 123456. Valid for {settings.otp_expire_minutes} minutes."
