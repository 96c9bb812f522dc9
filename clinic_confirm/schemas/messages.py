"""Notification ledger schemas."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class MessageChannel(str, Enum):
    """Delivery channel."""

    SMS = "sms"
    EMAIL = "email"


class MessageTemplate(str, Enum):
    """Kinds of notification the system sends."""

    CONFIRM_REQUEST = "confirm_request"
    CONFIRMED_ACK = "confirmed_ack"
    AUTO_CANCEL_NOTICE = "auto_cancel_notice"
    CLINIC_CANCEL_NOTICE = "clinic_cancel_notice"


class ReserveDecision(str, Enum):
    """Whether the caller owns the send for a ledger slot."""

    SEND = "send"
    SKIP = "skip"


DELIVERY_QUEUED = "queued"
DELIVERY_SENT = "sent"
DELIVERY_FAILED = "failed"


@dataclass
class SendResult:
    """What a transport reports back for one send."""

    delivery_status: str
    provider_message_id: str | None = None
    raw: Any = field(default=None)


class MessageResponse(BaseModel):
    """Schema for a ledger row."""

    id: UUID
    appointment_id: UUID
    channel: MessageChannel
    template: MessageTemplate
    recipient: str
    sent_at: datetime
    delivery_status: str
    provider_message_id: str | None = None

    model_config = {"from_attributes": True}
