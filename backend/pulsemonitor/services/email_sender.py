"""Email sender service - sends alerts via SMTP."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from ..schemas.settings import MonitoringSettings
from .delivery import SendResult

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30  # seconds


@dataclass
class EmailConfig:
    """SMTP configuration for sending emails."""
    host: str
    port: int
    username: str
    password: str
    use_tls: bool = True
    from_address: str = ""

    @classmethod
    def from_settings(cls, settings: MonitoringSettings) -> "EmailConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.smtp_from,
        )

    @property
    def sender(self) -> str:
        return self.from_address or self.username


class EmailSenderService:
    """Service for sending email alerts via SMTP, one recipient per message."""

    def __init__(self, timeout: float = SMTP_TIMEOUT):
        self.timeout = timeout

    async def send_email(
        self,
        config: EmailConfig,
        to_address: str,
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
    ) -> SendResult:
        """Send one email. Never raises; failures come back in the result."""
        if not config.host or not config.username:
            logger.warning("Email not configured - missing SMTP host or username")
            return SendResult("email", False, [to_address], error="Email not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = config.sender
        msg["To"] = to_address
        msg.attach(MIMEText(text_body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(None, self._deliver, config, to_address, msg.as_string()),
                timeout=self.timeout + 1,
            )
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for user '{config.username}': {e}")
            return SendResult("email", False, [to_address], error=f"Authentication failed: {e}")
        except smtplib.SMTPRecipientsRefused as e:
            logger.error(f"Recipient refused by server: {to_address}")
            return SendResult("email", False, [to_address], error=f"Recipient refused: {e}")
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {to_address}: {type(e).__name__}: {e}")
            return SendResult("email", False, [to_address], error=str(e))
        except (asyncio.TimeoutError, TimeoutError):
            logger.error(f"Timeout sending email via {config.host}:{config.port}")
            return SendResult("email", False, [to_address], error="SMTP timeout")
        except OSError as e:
            logger.error(f"Failed to connect to SMTP server {config.host}:{config.port}: {e}")
            return SendResult("email", False, [to_address], error=str(e))

        logger.info(f"Email sent to {to_address}: {subject}")
        return SendResult("email", True, [to_address])

    def _deliver(self, config: EmailConfig, to_address: str, message: str) -> None:
        with smtplib.SMTP(config.host, config.port, timeout=self.timeout) as server:
            if config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if config.username and config.password:
                server.login(config.username, config.password)
            server.sendmail(config.sender, [to_address], message)

    async def verify(self, config: EmailConfig) -> SendResult:
        """Connect and authenticate without sending anything."""
        if not config.host:
            return SendResult("email", False, error="Email not configured")

        def _check():
            with smtplib.SMTP(config.host, config.port, timeout=self.timeout) as server:
                if config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if config.username and config.password:
                    server.login(config.username, config.password)

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(loop.run_in_executor(None, _check), timeout=self.timeout + 1)
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"SMTP verification failed for {config.host}:{config.port}: {e}")
            return SendResult("email", False, error=str(e) or type(e).__name__)
        return SendResult("email", True, detail="Email configuration is valid")


# Global instance
email_sender_service = EmailSenderService()
