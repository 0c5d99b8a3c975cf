"""Unit tests for notification services."""
from __future__ import annotations

import smtplib
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lending_core.config import EmailConfig, TelegramConfig
from lending_core.notifications.email import EmailNotifier, parse_recipients
from lending_core.notifications.telegram import TelegramNotifier, split_message


def _telegram_session(status: int) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


# ---------------------------------------------------------------------------
# TelegramNotifier
# ---------------------------------------------------------------------------


@pytest.fixture()
def telegram_notifier() -> TelegramNotifier:
    return TelegramNotifier(
        TelegramConfig(
            enabled=True,
            alert_bot_token="alert-tok",
            log_bot_token="log-tok",
            chat_id="12345",
        )
    )


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_send_alert_uses_alert_bot(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _telegram_session(200)

        with patch("lending_core.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_core.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("HF 0.89", subject="CRITICAL")

        assert result is True
        url = mock_session.post.call_args[0][0]
        payload = mock_session.post.call_args.kwargs["json"]
        assert "botalert-tok" in url
        assert payload["text"] == "CRITICAL\n\nHF 0.89"
        assert payload["disable_notification"] is False

    @pytest.mark.asyncio
    async def test_message_is_html_escaped(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _telegram_session(200)

        with patch("lending_core.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_core.notifications.telegram.aiohttp.TCPConnector"):
                await telegram_notifier.send_log("HF < 1.0 & falling")

        payload = mock_session.post.call_args.kwargs["json"]
        assert payload["text"] == "HF &lt; 1.0 &amp; falling"

    @pytest.mark.asyncio
    async def test_send_alert_failure(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _telegram_session(403)

        with patch("lending_core.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_core.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_alert("test alert")

        assert result is False

    @pytest.mark.asyncio
    async def test_send_log_uses_log_bot_silently(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _telegram_session(200)

        with patch("lending_core.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_core.notifications.telegram.aiohttp.TCPConnector"):
                result = await telegram_notifier.send_log("sweep done")

        assert result is True
        assert "botlog-tok" in mock_session.post.call_args[0][0]
        assert mock_session.post.call_args.kwargs["json"]["disable_notification"] is True

    @pytest.mark.asyncio
    async def test_unconfigured_returns_false(self) -> None:
        notifier = TelegramNotifier(TelegramConfig(enabled=True))
        assert await notifier.send_alert("test") is False
        assert await notifier.send_log("test") is False

    @pytest.mark.asyncio
    async def test_long_message_sent_in_parts(self, telegram_notifier: TelegramNotifier) -> None:
        mock_session = _telegram_session(200)
        report = "\n".join(f"LIQ-{i} · pos_{i:040d}" for i in range(200))

        with patch("lending_core.notifications.telegram.aiohttp.ClientSession", return_value=mock_session):
            with patch("lending_core.notifications.telegram.aiohttp.TCPConnector"):
                assert await telegram_notifier.send_alert(report) is True

        texts = [c.kwargs["json"]["text"] for c in mock_session.post.call_args_list]
        assert len(texts) > 1
        assert all(len(t) <= 4096 for t in texts)
        assert "\n".join(texts) == report


class TestSplitMessage:
    def test_short_message_unchanged(self) -> None:
        assert split_message("one\ntwo") == ["one\ntwo"]

    def test_splits_on_line_boundaries(self) -> None:
        assert split_message("aaaa\nbbbb\ncc", limit=9) == ["aaaa\nbbbb", "cc"]

    def test_hard_wraps_long_line(self) -> None:
        assert split_message("abcdefghij", limit=4) == ["abcd", "efgh", "ij"]


# ---------------------------------------------------------------------------
# EmailNotifier
# ---------------------------------------------------------------------------


@pytest.fixture()
def email_notifier() -> EmailNotifier:
    return EmailNotifier(
        EmailConfig(
            enabled=True,
            alert_email="risk@example.com",
            smtp_server="smtp.example.com",
            smtp_port=587,
            sender_email="sender@example.com",
            sender_password="password123",
        )
    )


class TestEmailNotifier:
    @pytest.mark.asyncio
    async def test_send_alert_success(self, email_notifier: EmailNotifier) -> None:
        mock_smtp = MagicMock()
        mock_smtp.__enter__.return_value = mock_smtp
        with patch("lending_core.notifications.email.smtplib.SMTP", return_value=mock_smtp):
            result = await email_notifier.send_alert("test body", subject="Test")

        assert result is True
        mock_smtp.starttls.assert_called_once()
        mock_smtp.login.assert_called_once_with("sender@example.com", "password123")
        sent = mock_smtp.send_message.call_args[0][0]
        assert sent["Subject"] == "Test"
        assert sent["To"] == "risk@example.com"

    @pytest.mark.asyncio
    async def test_send_alert_smtp_error(self, email_notifier: EmailNotifier) -> None:
        with patch(
            "lending_core.notifications.email.smtplib.SMTP",
            side_effect=smtplib.SMTPConnectError(421, "SMTP down"),
        ):
            result = await email_notifier.send_alert("test body", subject="Test")
        assert result is False

    @pytest.mark.asyncio
    async def test_connection_refused(self, email_notifier: EmailNotifier) -> None:
        with patch(
            "lending_core.notifications.email.smtplib.SMTP",
            side_effect=ConnectionRefusedError("refused"),
        ):
            assert await email_notifier.send_alert("body") is False

    @pytest.mark.asyncio
    async def test_no_alert_email_returns_false(self) -> None:
        notifier = EmailNotifier(EmailConfig(enabled=True))
        assert await notifier.send_alert("test") is False

    @pytest.mark.asyncio
    async def test_no_credentials_returns_false(self) -> None:
        notifier = EmailNotifier(EmailConfig(enabled=True, alert_email="risk@example.com"))
        assert await notifier.send_alert("test") is False

    @pytest.mark.asyncio
    async def test_send_log_is_noop(self, email_notifier: EmailNotifier) -> None:
        assert await email_notifier.send_log("test") is False

    @pytest.mark.asyncio
    async def test_multiple_recipients(self) -> None:
        notifier = EmailNotifier(
            EmailConfig(
                enabled=True,
                alert_email="risk@example.com, ops@example.com,",
                sender_email="sender@example.com",
                sender_password="password123",
            )
        )
        mock_smtp = MagicMock()
        mock_smtp.__enter__.return_value = mock_smtp
        with patch("lending_core.notifications.email.smtplib.SMTP", return_value=mock_smtp):
            assert await notifier.send_alert("body") is True

        sent = mock_smtp.send_message.call_args[0][0]
        assert sent["To"] == "risk@example.com, ops@example.com"
        assert sent["Subject"] == "Lending risk alert"
        assert mock_smtp.send_message.call_args.kwargs["to_addrs"] == [
            "risk@example.com",
            "ops@example.com",
        ]

    def test_parse_recipients(self) -> None:
        assert parse_recipients("") == []
        assert parse_recipients(" a@x.io ,b@x.io") == ["a@x.io", "b@x.io"]
