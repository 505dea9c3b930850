"""
Tests for buyer payment notifications.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import smtplib

import pytest

from config import Settings
from services.notification_service import NotificationService


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        self.logged_in = username

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


@pytest.fixture
def smtp_settings():
    return Settings(smtp_host="smtp.test", smtp_username="mailer", smtp_password="pw")


class TestNotificationService:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_without_smtp_host(self):
        notifier = NotificationService(Settings(smtp_host=""))
        assert notifier.enabled is False
        assert await notifier.payment_succeeded("buyer@example.com", 1000, "XAF") is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_recipient(self, smtp_settings):
        assert await NotificationService(smtp_settings).payment_failed(None, "declined") is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success_email_sent(self, smtp_settings, monkeypatch):
        FakeSMTP.sent = []
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        sent = await NotificationService(smtp_settings).payment_succeeded("buyer@example.com", 1000, "XAF")

        assert sent is True
        msg = FakeSMTP.sent[0]
        assert msg["To"] == "buyer@example.com"
        assert msg["Subject"] == "Payment successful"
        assert "1000 XAF" in msg.get_payload(decode=True).decode()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_smtp_failure_is_swallowed(self, smtp_settings, monkeypatch):
        def broken(*args, **kwargs):
            raise smtplib.SMTPConnectError(421, "unavailable")

        monkeypatch.setattr(smtplib, "SMTP", broken)
        assert await NotificationService(smtp_settings).payment_failed("buyer@example.com", "declined") is False
