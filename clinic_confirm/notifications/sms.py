"""SMS transports.

One implementation is chosen when the application starts; a misconfigured
provider raises ``ConfigurationError`` instead of falling back to logging.
"""

import re
from typing import Any, Protocol
from uuid import uuid4

import httpx
import structlog

from clinic_confirm.config import Settings
from clinic_confirm.core.exceptions import ConfigurationError, SmsDeliveryError
from clinic_confirm.schemas.messages import DELIVERY_FAILED, DELIVERY_QUEUED, DELIVERY_SENT, SendResult

logger = structlog.get_logger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


class SmsSender(Protocol):
    """Anything that can deliver one text message."""

    async def send(self, to: str, body: str) -> SendResult: ...


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_text(raw: Any, default: str) -> str:
    if isinstance(raw, dict):
        for key in ("messages", "message", "error", "detail"):
            value = raw.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return default


class LoggingSmsSender:
    """Development transport: logs the message and reports it as sent."""

    async def send(self, to: str, body: str) -> SendResult:
        logger.info("sms_logged", to=to, body=body)
        return SendResult(
            delivery_status=DELIVERY_SENT,
            provider_message_id=f"dummy-{uuid4().hex}",
            raw={"provider": "dummy"},
        )


class TwilioSmsSender:
    """Twilio Messages API over httpx."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_phone: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_phone = from_phone
        self.timeout = timeout
        self._transport = transport

    async def send(self, to: str, body: str) -> SendResult:
        url = TWILIO_API_URL.format(account_sid=self.account_sid)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    url,
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to, "From": self.from_phone, "Body": body},
                )
            except httpx.HTTPError as e:
                raise SmsDeliveryError(f"Twilio request failed: {e}") from e

        raw = _parse_body(response)
        if response.status_code not in (200, 201):
            raise SmsDeliveryError(
                f"Twilio send failed ({response.status_code}): "
                f"{_error_text(raw, 'Unknown Twilio error')}",
                raw=raw,
            )

        result = raw if isinstance(raw, dict) else {}
        return SendResult(
            delivery_status=result.get("status") or DELIVERY_QUEUED,
            provider_message_id=result.get("sid"),
            raw=raw,
        )


def _smso_message_id(raw: Any) -> str | None:
    if not isinstance(raw, dict):
        return None
    for key in ("responseToken", "message_id", "id", "sms_id"):
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return None
    return None


def _smso_delivery_status(raw: Any) -> str:
    if not isinstance(raw, dict):
        return DELIVERY_QUEUED
    status = raw.get("status")
    if isinstance(status, bool):
        return DELIVERY_QUEUED if status else DELIVERY_FAILED
    if isinstance(status, str) and status.strip():
        return status
    return DELIVERY_QUEUED


def _smso_first_sender(raw: Any) -> str | None:
    rows: list[Any] = []
    if isinstance(raw, list):
        rows = raw
    elif isinstance(raw, dict):
        for key in ("data", "senders", "items"):
            if isinstance(raw.get(key), list):
                rows = raw[key]
                break

    rows = [row for row in rows if isinstance(row, dict)]
    if not rows:
        return None

    first = rows[0]
    for key in ("id", "sender_id", "senderId"):
        value = first.get(key)
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


class SmsoSmsSender:
    """SMSO.ro HTTP API.

    The sender id comes from configuration or, when unset, from the first
    entry of ``GET /senders``; a discovered id is cached on the instance.
    """

    def __init__(
        self,
        api_key: str,
        sender: str | None = None,
        base_url: str = "https://app.smso.ro/api/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.configured_sender = sender.strip() if sender and sender.strip() else None
        self.base_url = re.sub(r"/+$", "", base_url.strip())
        self.timeout = timeout
        self._transport = transport
        self._discovered_sender: str | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-Authorization": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _resolve_sender(self, client: httpx.AsyncClient) -> str:
        if self.configured_sender:
            return self.configured_sender
        if self._discovered_sender:
            return self._discovered_sender

        response = await client.get("/senders")
        raw = _parse_body(response)
        if not 200 <= response.status_code < 300:
            raise SmsDeliveryError(
                f"SMSO senders lookup failed ({response.status_code}): "
                f"{_error_text(raw, 'Unknown SMSO error')}",
                raw=raw,
            )

        sender_id = _smso_first_sender(raw)
        if not sender_id:
            raise SmsDeliveryError(
                "SMSO sender could not be detected; set SMSO_SENDER", raw=raw
            )

        logger.info("smso_sender_discovered", sender=sender_id)
        self._discovered_sender = sender_id
        return sender_id

    async def send(self, to: str, body: str) -> SendResult:
        async with self._client() as client:
            try:
                sender = await self._resolve_sender(client)
                response = await client.post(
                    "/send", data={"sender": sender, "to": to, "body": body}
                )
            except httpx.HTTPError as e:
                raise SmsDeliveryError(f"SMSO request failed: {e}") from e

        raw = _parse_body(response)
        if not 200 <= response.status_code < 300:
            raise SmsDeliveryError(
                f"SMSO send failed ({response.status_code}): "
                f"{_error_text(raw, 'Unknown SMSO error')}",
                raw=raw,
            )

        return SendResult(
            delivery_status=_smso_delivery_status(raw),
            provider_message_id=_smso_message_id(raw),
            raw=raw,
        )


def build_sms_sender(settings: Settings) -> SmsSender:
    """
    Construct the SMS transport named by ``SMS_PROVIDER``.

    Raises:
        ConfigurationError: Unknown provider or missing credentials
    """
    provider = (settings.sms_provider or "").strip().lower()

    if provider in ("dummy", "log"):
        return LoggingSmsSender()

    if provider == "twilio":
        missing = [
            name
            for name, value in (
                ("TWILIO_ACCOUNT_SID", settings.twilio_account_sid),
                ("TWILIO_AUTH_TOKEN", settings.twilio_auth_token),
                ("TWILIO_FROM_PHONE", settings.twilio_from_phone),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"Twilio SMS provider requires {', '.join(missing)}")
        return TwilioSmsSender(
            account_sid=settings.twilio_account_sid,  # type: ignore[arg-type]
            auth_token=settings.twilio_auth_token,  # type: ignore[arg-type]
            from_phone=settings.twilio_from_phone,  # type: ignore[arg-type]
            timeout=settings.sms_timeout_seconds,
        )

    if provider == "smso":
        if not settings.smso_api_key:
            raise ConfigurationError("SMSO SMS provider requires SMSO_API_KEY")
        return SmsoSmsSender(
            api_key=settings.smso_api_key,
            sender=settings.smso_sender,
            base_url=settings.smso_base_url,
            timeout=settings.sms_timeout_seconds,
        )

    raise ConfigurationError(f"Unknown SMS provider: {settings.sms_provider!r}")
