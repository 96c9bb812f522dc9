"""Email transports for clinic-manager notices."""

import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

import structlog

from clinic_confirm.config import Settings
from clinic_confirm.core.exceptions import ConfigurationError, EmailDeliveryError
from clinic_confirm.schemas.messages import DELIVERY_SENT, SendResult

logger = structlog.get_logger(__name__)

DELIVERY_LOGGED = "logged"


class EmailSender(Protocol):
    """Anything that can deliver one plain-text email."""

    async def send(self, to: str, subject: str, body: str) -> SendResult: ...


class LoggingEmailSender:
    """Development transport: logs the email instead of sending it."""

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        logger.info("email_logged", to=to, subject=subject, body=body)
        return SendResult(delivery_status=DELIVERY_LOGGED)


class SmtpEmailSender:
    """Plain SMTP via ``smtplib``, run in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_address: str,
        use_ssl: bool = False,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to
        message["Message-ID"] = make_msgid()
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            server.starttls(context=context)

        try:
            server.login(self.username, self.password)
            server.send_message(message)
        finally:
            server.quit()

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        message = self._build_message(to, subject, body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP send failed: {e}") from e

        logger.info("email_sent", to=to, host=self.host)
        return SendResult(
            delivery_status=DELIVERY_SENT,
            provider_message_id=message["Message-ID"],
            raw={"host": self.host},
        )


def build_email_sender(settings: Settings) -> EmailSender:
    """
    Construct the email transport named by ``EMAIL_PROVIDER``.

    Raises:
        ConfigurationError: Unknown provider or missing SMTP settings
    """
    provider = (settings.email_provider or "").strip().lower()

    if provider == "log":
        return LoggingEmailSender()

    if provider == "smtp":
        missing = [
            name
            for name, value in (
                ("SMTP_HOST", settings.smtp_host),
                ("SMTP_USER", settings.smtp_user),
                ("SMTP_PASS", settings.smtp_password),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"SMTP email provider requires {', '.join(missing)}")
        return SmtpEmailSender(
            host=settings.smtp_host,  # type: ignore[arg-type]
            port=settings.smtp_port,
            username=settings.smtp_user,  # type: ignore[arg-type]
            password=settings.smtp_password,  # type: ignore[arg-type]
            from_address=settings.smtp_from,
            use_ssl=settings.smtp_use_ssl,
        )

    raise ConfigurationError(f"Unknown email provider: {settings.email_provider!r}")
