"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
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

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "clinic_id",
        Uuid,
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Identifier from the clinic's own system; unique only together with the start
    Column("external_appointment_id", Text, nullable=False),
    Column("start_datetime", UTCDateTime, nullable=False),
    # Contact, E.164
    Column("phone", String(20), nullable=False),
    Column("appointment_type", Text, nullable=False),
    Column("patient_name", Text, nullable=True),
    Column("provider_name", Text, nullable=True),
    Column("source", String(20), nullable=False, default="csv_upload"),
    Column("status", String(32), nullable=False, default="pending"),
    # Audit fields
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'canceled_by_patient', 'canceled_auto')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "source IN ('csv_upload', 'email')",
        name="appointments_source_check",
    ),
    UniqueConstraint(
        "clinic_id",
        "external_appointment_id",
        "start_datetime",
        name="unique_appointment_natural_key",
    ),
    Index("idx_appointments_clinic_start", "clinic_id", "start_datetime"),
    Index("idx_appointments_clinic_status", "clinic_id", "status"),
)
