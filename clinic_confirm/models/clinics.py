"""Clinic model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Integer, String, Table, Uuid

from clinic_confirm.models.base import UTCDateTime, metadata, utcnow

clinics = Table(
    "clinics",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("name", String(255), nullable=False),
    # IANA zone name, e.g. "Europe/Bucharest"
    Column("timezone", String(64), nullable=False),
    # Local hour when confirmation requests go out
    Column("export_hour", Integer, nullable=False),
    # Local hour when unconfirmed appointments are auto-canceled (same day)
    Column("deadline_hour", Integer, nullable=False),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    Column("updated_at", UTCDateTime, nullable=False, default=utcnow),
    CheckConstraint("export_hour BETWEEN 0 AND 23", name="clinics_export_hour_check"),
    CheckConstraint("deadline_hour BETWEEN 0 AND 23", name="clinics_deadline_hour_check"),
)
