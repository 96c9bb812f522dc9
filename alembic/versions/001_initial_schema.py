"""Initial schema: clinics, managers, appointments, tokens, messages

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create all tables."""
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "clinics",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("export_hour", sa.Integer(), nullable=False),
        sa.Column("deadline_hour", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("export_hour BETWEEN 0 AND 23", name="clinics_export_hour_check"),
        sa.CheckConstraint("deadline_hour BETWEEN 0 AND 23", name="clinics_deadline_hour_check"),
    )

    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("role", sa.String(length=20), server_default=sa.text("'manager'"), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["clinic_id"], ["clinics.id"], ondelete="CASCADE"),
        sa.CheckConstraint("role IN ('manager')", name="users_role_check"),
    )
    op.create_index("idx_users_clinic_role", "users", ["clinic_id", "role"])

    op.create_table(
        "appointments",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("clinic_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_appointment_id", sa.Text(), nullable=False),
        sa.Column("start_datetime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=False),
        sa.Column("appointment_type", sa.Text(), nullable=False),
        sa.Column("patient_name", sa.Text(), nullable=True),
        sa.Column("provider_name", sa.Text(), nullable=True),
        sa.Column(
            "source", sa.String(length=20), server_default=sa.text("'csv_upload'"), nullable=False
        ),
        sa.Column(
            "status", sa.String(length=32), server_default=sa.text("'pending'"), nullable=False
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["clinic_id"], ["clinics.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'canceled_by_patient', 'canceled_auto')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint("source IN ('csv_upload', 'email')", name="appointments_source_check"),
        sa.UniqueConstraint(
            "clinic_id",
            "external_appointment_id",
            "start_datetime",
            name="unique_appointment_natural_key",
        ),
    )
    op.create_index(
        "idx_appointments_clinic_start", "appointments", ["clinic_id", "start_datetime"]
    )
    op.create_index("idx_appointments_clinic_status", "appointments", ["clinic_id", "status"])

    op.create_table(
        "tokens",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("purpose", sa.String(length=10), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.CheckConstraint("purpose IN ('confirm', 'cancel')", name="tokens_purpose_check"),
        sa.UniqueConstraint("token", name="tokens_token_key"),
        sa.UniqueConstraint("appointment_id", "purpose", name="unique_token_appointment_purpose"),
    )

    op.create_table(
        "messages",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("appointment_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("channel", sa.String(length=10), nullable=False),
        sa.Column("template", sa.String(length=40), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column(
            "sent_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "delivery_status",
            sa.String(length=32),
            server_default=sa.text("'queued'"),
            nullable=False,
        ),
        sa.Column("provider_message_id", sa.Text(), nullable=True),
        sa.Column("raw", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"], ondelete="CASCADE"),
        sa.CheckConstraint("channel IN ('sms', 'email')", name="messages_channel_check"),
        sa.CheckConstraint(
            "template IN ('confirm_request', 'confirmed_ack', 'auto_cancel_notice', "
            "'clinic_cancel_notice')",
            name="messages_template_check",
        ),
        sa.UniqueConstraint(
            "appointment_id", "channel", "template", name="unique_message_slot"
        ),
    )
    op.create_index("idx_messages_appointment", "messages", ["appointment_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_messages_appointment", table_name="messages")
    op.drop_table("messages")
    op.drop_table("tokens")
    op.drop_index("idx_appointments_clinic_status", table_name="appointments")
    op.drop_index("idx_appointments_clinic_start", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("idx_users_clinic_role", table_name="users")
    op.drop_table("users")
    op.drop_table("clinics")
