"""Email notification service."""
from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ..config import EmailConfig

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Lending risk alert"


def parse_recipients(value: str) -> list[str]:
    """``alert_email`` may list several comma-separated addresses."""
    return [addr.strip() for addr in value.split(",") if addr.strip()]


class EmailNotifier:
    """Send risk alerts and daily reports by email (STARTTLS)."""

    def __init__(self, config: EmailConfig) -> None:
        self.recipients = parse_recipients(config.alert_email)
        self.smtp_server = config.smtp_server
        self.smtp_port = config.smtp_port
        self.sender_email = config.sender_email
        self.sender_password = config.sender_password

    def _build_message(self, message: str, subject: str) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.sender_email
        msg["To"] = ", ".join(self.recipients)
        msg["Subject"] = subject or DEFAULT_SUBJECT
        msg.attach(MIMEText(message, "plain", "utf-8"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(self.sender_email, self.sender_password)
            server.send_message(msg, to_addrs=self.recipients)

    async def send_alert(self, message: str, subject: str = "") -> bool:
        if not self.recipients:
            logger.debug("No alert email configured, skipping email")
            return False

        if not self.sender_email or not self.sender_password:
            logger.warning("Email credentials not configured")
            return False

        # smtplib blocks; keep the sweep loop responsive
        try:
            await asyncio.to_thread(self._deliver, self._build_message(message, subject))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %d recipients: %s", len(self.recipients), e)
            return False

        logger.info("Alert email sent to %s", ", ".join(self.recipients))
        return True

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Sweep logs are not emailed."""
        return False
