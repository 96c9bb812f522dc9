"""Single-use action tokens for patient confirm/cancel links."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)

from clinic_confirm.models.base import UTCDateTime, metadata, utcnow

tokens = Table(
    "tokens",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("purpose", String(10), nullable=False),
    Column("token", Text, nullable=False, unique=True),
    Column("expires_at", UTCDateTime, nullable=False),
    Column("used_at", UTCDateTime, nullable=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    CheckConstraint("purpose IN ('confirm', 'cancel')", name="tokens_purpose_check"),
    # One logical slot per purpose; rotation overwrites it
    UniqueConstraint("appointment_id", "purpose", name="unique_token_appointment_purpose"),
)
