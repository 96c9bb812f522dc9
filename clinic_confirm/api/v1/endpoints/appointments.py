"""Appointment endpoints for clinic managers."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from clinic_confirm.core.exceptions import NotFoundException
from clinic_confirm.dependencies import CurrentManager, DatabaseSession
from clinic_confirm.schemas.appointments import (
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
)
from clinic_confirm.schemas.messages import MessageResponse
from clinic_confirm.services.appointment_service import AppointmentService
from clinic_confirm.services.clinic_service import ClinicService
from clinic_confirm.services.message_ledger import MessageLedger
from clinic_confirm.services.time_windows import day_after_tomorrow_local, day_range_utc

router = APIRouter()


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments of one day",
)
async def list_appointments(
    current_manager: CurrentManager,
    db: DatabaseSession,
    day: date | None = Query(None, description="Local day, defaults to the day after tomorrow"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
) -> AppointmentListResponse:
    """
    List the manager's clinic appointments on a clinic-local calendar day.

    Args:
        current_manager: Authenticated manager
        db: Database session
        day: Local calendar day
        status_filter: Optional status filter

    Returns:
        Appointments ordered by start time
    """
    clinic = await ClinicService(db).get_clinic(current_manager["clinic_id"])
    if not clinic:
        raise NotFoundException("Clinic not found")

    day = day or day_after_tomorrow_local(clinic["timezone"])
    lo, hi = day_range_utc(day, clinic["timezone"])
    items = await AppointmentService(db).list_in_range(
        clinic["id"],
        lo,
        hi,
        statuses=[status_filter] if status_filter else None,
    )

    return AppointmentListResponse(
        day=day,
        range_start=lo,
        range_end=hi,
        total=len(items),
        items=[AppointmentResponse.model_validate(item) for item in items],
    )


@router.get(
    "/{appointment_id}/messages",
    response_model=list[MessageResponse],
    status_code=status.HTTP_200_OK,
    summary="Notification history of an appointment",
)
async def list_appointment_messages(
    appointment_id: UUID,
    current_manager: CurrentManager,
    db: DatabaseSession,
) -> list[MessageResponse]:
    """
    List ledger entries for one of the manager's appointments.

    Raises:
        NotFoundException: If the appointment is missing or belongs to another clinic
    """
    appointment = await AppointmentService(db).get_appointment(appointment_id)
    if not appointment or appointment["clinic_id"] != current_manager["clinic_id"]:
        raise NotFoundException("Appointment not found")

    rows = await MessageLedger(db).list_for_appointment(appointment_id)
    return [MessageResponse.model_validate(row) for row in rows]
