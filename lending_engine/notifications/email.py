"""Email notification channel (alerts only)."""
import asyncio
import logging
import smtplib
from email.message import EmailMessage

from ..config import EmailConfig

logger = logging.getLogger(__name__)


class EmailNotifier:
    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    def _deliver(self, msg: EmailMessage) -> None:
        cfg = self._config
        with smtplib.SMTP(cfg.smtp_server, cfg.smtp_port) as server:
            server.starttls()
            server.login(cfg.sender_email, cfg.sender_password)
            server.send_message(msg)

    async def send_alert(self, message: str, subject: str = "") -> bool:
        """Send an alert email; SMTP runs in a worker thread."""
        cfg = self._config
        if not cfg.alert_email:
            logger.debug("No alert email configured, skipping email")
            return False
        if not cfg.sender_email or not cfg.sender_password:
            logger.warning("Email credentials not configured")
            return False

        msg = EmailMessage()
        msg["From"] = cfg.sender_email
        msg["To"] = cfg.alert_email
        msg["Subject"] = subject or "Lending engine alert"
        msg.set_content(message)

        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email: %s", e)
            return False
        logger.info("Alert email sent to %s", cfg.alert_email)
        return True

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Routine log messages are not emailed."""
        return False
