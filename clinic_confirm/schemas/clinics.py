"""Clinic schemas for request/response validation."""

from datetime import date, datetime
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator


class ClinicResponse(BaseModel):
    """Schema for clinic response."""

    id: UUID
    name: str
    timezone: str
    export_hour: int
    deadline_hour: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ClinicSettingsUpdate(BaseModel):
    """Schema for updating clinic settings."""

    name: str = Field(..., min_length=1, max_length=255)
    timezone: str = Field(..., min_length=1, max_length=64)
    export_hour: int = Field(..., ge=0, le=23)
    deadline_hour: int = Field(..., ge=0, le=23)

    @field_validator("name", "timezone")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Trim surrounding whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("Value must not be blank")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Timezone must be a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class StatusCounts(BaseModel):
    """Appointment counts per status."""

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    canceled_by_patient: int = 0
    canceled_auto: int = 0


class DashboardResponse(BaseModel):
    """Day-after-tomorrow overview for a clinic manager."""

    clinic_id: UUID
    day: date
    deadline: datetime
    counts: StatusCounts
