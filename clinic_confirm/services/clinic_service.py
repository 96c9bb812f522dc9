"""Clinic service for business logic."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.models.base import utcnow
from clinic_confirm.models.clinics import clinics
from clinic_confirm.models.users import users
from clinic_confirm.schemas.clinics import ClinicSettingsUpdate

logger = structlog.get_logger(__name__)


class ClinicService:
    """Service for clinic and clinic-manager lookups."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def list_clinics(self) -> list[dict[str, Any]]:
        """List all clinics."""
        result = await self.db.execute(select(clinics).order_by(clinics.c.created_at.asc()))
        return [dict(row) for row in result.mappings().all()]

    async def get_clinic(self, clinic_id: UUID) -> dict[str, Any] | None:
        """Get clinic by ID."""
        result = await self.db.execute(select(clinics).where(clinics.c.id == clinic_id))
        row = result.mappings().first()
        return dict(row) if row else None

    async def update_settings(
        self, clinic_id: UUID, data: ClinicSettingsUpdate
    ) -> dict[str, Any] | None:
        """
        Update a clinic's name, timezone and job hours.

        Args:
            clinic_id: Clinic ID
            data: New settings

        Returns:
            Updated clinic or None if not found
        """
        stmt = (
            update(clinics)
            .where(clinics.c.id == clinic_id)
            .values(**data.model_dump(), updated_at=utcnow())
            .returning(clinics)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        await self.db.commit()

        if row:
            logger.info(
                "clinic_settings_updated",
                clinic_id=str(clinic_id),
                timezone=data.timezone,
                export_hour=data.export_hour,
                deadline_hour=data.deadline_hour,
            )
        return dict(row) if row else None

    async def get_manager(self, user_id: UUID) -> dict[str, Any] | None:
        """Get an active clinic manager by user ID."""
        result = await self.db.execute(
            select(users).where(and_(users.c.id == user_id, users.c.is_active.is_(True)))
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def get_manager_email(self, clinic_id: UUID) -> str | None:
        """Email of the clinic's first active manager that has one."""
        stmt = (
            select(users.c.email)
            .where(
                and_(
                    users.c.clinic_id == clinic_id,
                    users.c.role == "manager",
                    users.c.is_active.is_(True),
                    users.c.email.is_not(None),
                )
            )
            .order_by(users.c.created_at.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
