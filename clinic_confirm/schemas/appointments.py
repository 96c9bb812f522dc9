"""Appointment schemas for request/response validation."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED_BY_PATIENT = "canceled_by_patient"
    CANCELED_AUTO = "canceled_auto"


class AppointmentSource(str, Enum):
    """Appointment source enumeration."""

    CSV_UPLOAD = "csv_upload"
    EMAIL = "email"


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    clinic_id: UUID
    external_appointment_id: str
    start_datetime: datetime
    phone: str
    appointment_type: str
    patient_name: str | None = None
    provider_name: str | None = None
    source: AppointmentSource
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Appointments of one local calendar day."""

    day: date
    range_start: datetime
    range_end: datetime
    total: int
    items: list[AppointmentResponse]
