"""Appointment store access and status state machine."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_confirm.database import dialect_insert
from clinic_confirm.models.appointments import appointments
from clinic_confirm.models.base import utcnow
from clinic_confirm.schemas.appointments import AppointmentStatus

logger = structlog.get_logger(__name__)

# Target status -> statuses it may be reached from
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.PENDING}),
    AppointmentStatus.CANCELED_BY_PATIENT: frozenset(
        {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED}
    ),
    AppointmentStatus.CANCELED_AUTO: frozenset({AppointmentStatus.PENDING}),
}

TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.CANCELED_BY_PATIENT, AppointmentStatus.CANCELED_AUTO}
)

# Columns an import may overwrite on an existing row
_UPSERT_COLUMNS = (
    "phone",
    "appointment_type",
    "patient_name",
    "provider_name",
    "source",
    "status",
    "updated_at",
)


def legal_sources(
    new_status: AppointmentStatus,
    allowed_current: Iterable[AppointmentStatus],
) -> frozenset[AppointmentStatus]:
    """Statuses from ``allowed_current`` that may legally move to ``new_status``."""
    requested = frozenset(AppointmentStatus(s) for s in allowed_current)
    return requested & ALLOWED_TRANSITIONS.get(new_status, frozenset())


class AppointmentService:
    """Service for reading appointments and changing their status."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_appointment(self, appointment_id: UUID) -> dict[str, Any] | None:
        """Get appointment by ID."""
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def list_in_range(
        self,
        clinic_id: UUID,
        range_start: datetime,
        range_end: datetime,
        statuses: Iterable[AppointmentStatus] | None = None,
    ) -> list[dict[str, Any]]:
        """
        List a clinic's appointments starting in ``[range_start, range_end)``.

        Args:
            clinic_id: Clinic ID
            range_start: Inclusive lower bound (UTC)
            range_end: Exclusive upper bound (UTC)
            statuses: Optional status filter

        Returns:
            Appointments ordered by start time
        """
        conditions = [
            appointments.c.clinic_id == clinic_id,
            appointments.c.start_datetime >= range_start,
            appointments.c.start_datetime < range_end,
        ]
        if statuses is not None:
            conditions.append(appointments.c.status.in_([s.value for s in statuses]))

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.start_datetime.asc())
        )
        result = await self.db.execute(stmt)
        return [dict(row) for row in result.mappings().all()]

    async def count_by_status(
        self,
        clinic_id: UUID,
        range_start: datetime,
        range_end: datetime,
    ) -> dict[str, int]:
        """Count a clinic's appointments per status inside a UTC range."""
        stmt = (
            select(appointments.c.status, func.count())
            .where(
                and_(
                    appointments.c.clinic_id == clinic_id,
                    appointments.c.start_datetime >= range_start,
                    appointments.c.start_datetime < range_end,
                )
            )
            .group_by(appointments.c.status)
        )
        result = await self.db.execute(stmt)

        counts = {status.value: 0 for status in AppointmentStatus}
        for status, count in result.all():
            counts[status] = count
        counts["total"] = sum(counts.values())
        return counts

    async def set_status(
        self,
        appointment_id: UUID,
        new_status: AppointmentStatus,
        allowed_current: Iterable[AppointmentStatus],
    ) -> dict[str, Any] | None:
        """
        Compare-and-set an appointment's status.

        The update only applies while the row's current status is in
        ``allowed_current`` and the move is a legal transition; otherwise
        nothing is written.

        Args:
            appointment_id: Appointment ID
            new_status: Target status
            allowed_current: Statuses the row may currently be in

        Returns:
            Updated appointment, or None if missing or the precondition failed
        """
        sources = legal_sources(new_status, allowed_current)
        if not sources:
            logger.warning(
                "illegal_status_transition_requested",
                appointment_id=str(appointment_id),
                new_status=new_status.value,
            )
            return None

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id == appointment_id,
                    appointments.c.status.in_([s.value for s in sources]),
                )
            )
            .values(status=new_status.value, updated_at=utcnow())
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()
        await self.db.commit()

        if not row:
            return None

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            status=new_status.value,
        )
        return dict(row)

    async def upsert_many(
        self,
        rows: list[dict[str, Any]],
        *,
        keep_statuses: Iterable[AppointmentStatus] = (),
        commit: bool = True,
    ) -> int:
        """
        Insert or update appointments keyed by their natural key.

        The conflict target is (clinic_id, external_appointment_id,
        start_datetime), so re-importing the same appointment updates it.

        Args:
            rows: Appointment values, one dict per row
            keep_statuses: Stored statuses an update must not overwrite
            commit: Commit after the write

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        now = utcnow()
        values = [{"id": uuid4(), "created_at": now, **row, "updated_at": now} for row in rows]

        stmt = dialect_insert(self.db, appointments).values(values)
        set_ = {column: stmt.excluded[column] for column in _UPSERT_COLUMNS}
        kept = [s.value for s in keep_statuses]
        if kept:
            set_["status"] = case(
                (appointments.c.status.in_(kept), appointments.c.status),
                else_=stmt.excluded.status,
            )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                appointments.c.clinic_id,
                appointments.c.external_appointment_id,
                appointments.c.start_datetime,
            ],
            set_=set_,
        )
        await self.db.execute(stmt)
        if commit:
            await self.db.commit()
        return len(values)

    async def cancel_missing(self, appointment_ids: list[UUID], *, commit: bool = True) -> int:
        """
        Mark still-pending appointments as canceled by the patient.

        Rows that moved on from ``pending`` in the meantime are left alone.

        Returns:
            Number of appointments canceled
        """
        if not appointment_ids:
            return 0

        stmt = (
            update(appointments)
            .where(
                and_(
                    appointments.c.id.in_(appointment_ids),
                    appointments.c.status == AppointmentStatus.PENDING.value,
                )
            )
            .values(status=AppointmentStatus.CANCELED_BY_PATIENT.value, updated_at=utcnow())
        )
        result = await self.db.execute(stmt)
        if commit:
            await self.db.commit()
        return result.rowcount or 0
