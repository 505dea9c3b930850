"""
Payment notifications to buyers.

Email goes out over SMTP (STARTTLS) when SMTP_HOST is configured; otherwise
the notification is only logged. A failed send is logged and never
propagated: the payment has already been settled by the time we notify.
"""
import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from typing import Optional

from config import Settings, settings as default_settings
from services.async_executor import run_blocking

logger = logging.getLogger(__name__)


def _mask_email(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}" if domain else "***"


class NotificationService:
    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    def _send_email(self, to_email: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.settings.smtp_sender
        msg["To"] = to_email
        msg["Subject"] = subject
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=15) as server:
            server.starttls()
            if self.settings.smtp_username:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(msg)

    async def notify(self, to_email: Optional[str], subject: str, body: str) -> bool:
        """Send one notification. Returns True if an email actually went out."""
        if not to_email:
            logger.info(f"  📭 Notification '{subject}' skipped: no recipient")
            return False
        if not self.enabled:
            logger.info(f"  📭 SMTP not configured; notification '{subject}' for {_mask_email(to_email)}")
            return False
        try:
            await run_blocking(self._send_email, to_email, subject, body)
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"  ❌ Notification '{subject}' failed: {type(e).__name__}")
            return False
        logger.info(f"  📧 Notification '{subject}' sent to {_mask_email(to_email)}")
        return True

    async def payment_succeeded(self, to_email: Optional[str], amount, currency: str) -> bool:
        return await self.notify(
            to_email,
            "Payment successful",
            f"Your payment of {amount} {currency} was successful. "
            f"Your DigiNum balance has been credited.",
        )

    async def payment_failed(self, to_email: Optional[str], reason: Optional[str]) -> bool:
        return await self.notify(
            to_email,
            "Payment failed",
            "Your payment attempt failed. Please try again."
            + (f"\nReason: {reason}" if reason else ""),
        )
