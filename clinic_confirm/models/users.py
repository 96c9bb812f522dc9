"""Clinic manager accounts using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
)

from clinic_confirm.models.base import UTCDateTime, metadata, utcnow

users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "clinic_id",
        Uuid,
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("email", Text, nullable=True),
    Column("full_name", Text, nullable=True),
    Column("role", String(20), nullable=False, default="manager"),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False, default=utcnow),
    CheckConstraint("role IN ('manager')", name="users_role_check"),
    Index("idx_users_clinic_role", "clinic_id", "role"),
)
