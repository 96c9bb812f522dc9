"""Notification ledger: one row per (appointment, channel, template)."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from clinic_confirm.models.base import UTCDateTime, metadata, utcnow

messages = Table(
    "messages",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("channel", String(10), nullable=False),
    Column("template", String(40), nullable=False),
    Column("recipient", Text, nullable=False),
    Column("sent_at", UTCDateTime, nullable=False, default=utcnow),
    # Free-form status reported by the transport: queued, sent, failed, logged, ...
    Column("delivery_status", String(32), nullable=False, default="queued"),
    Column("provider_message_id", Text, nullable=True),
    Column("raw", JSON, nullable=True),
    CheckConstraint("channel IN ('sms', 'email')", name="messages_channel_check"),
    CheckConstraint(
        "template IN ('confirm_request', 'confirmed_ack', 'auto_cancel_notice', "
        "'clinic_cancel_notice')",
        name="messages_template_check",
    ),
    UniqueConstraint("appointment_id", "channel", "template", name="unique_message_slot"),
    Index("idx_messages_appointment", "appointment_id"),
)
